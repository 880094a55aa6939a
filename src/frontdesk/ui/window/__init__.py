from frontdesk.ui.window.app_dialogs import AppMessageDialog

__all__ = ["AppMessageDialog"]
