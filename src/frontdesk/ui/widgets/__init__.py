from frontdesk.ui.widgets.banners import AuthBanner, NotificationBanner
from frontdesk.ui.widgets.entry_panel import ConfirmBar, EntryPanel, EntryRow

__all__ = ["AuthBanner", "ConfirmBar", "EntryPanel", "EntryRow", "NotificationBanner"]
