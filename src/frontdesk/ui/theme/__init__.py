from frontdesk.ui.theme.loader import ThemeMode, apply_app_theme, load_stylesheet

__all__ = ["ThemeMode", "apply_app_theme", "load_stylesheet"]
