from __future__ import annotations

import argparse
import sys
from typing import Sequence

from PySide6.QtCore import Qt
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import QApplication, QMainWindow, QTabWidget, QVBoxLayout, QWidget

from frontdesk.app.client_context import FrontDeskContext, build_client_context
from frontdesk.app.db_debug import db_debug
from frontdesk.app.errors import ConfigurationError
from frontdesk.app.identity import Identity
from frontdesk.app.settings_store import SUPPORTED_BACKENDS, load_config, load_dark_mode
from frontdesk.core import StateStreamer, StreamEvent
from frontdesk.ui.theme import apply_app_theme
from frontdesk.ui.widgets import AuthBanner, EntryPanel, NotificationBanner
from frontdesk.ui.window import AppMessageDialog
from frontdesk.version import APP_VERSION


class FrontDeskWindow(QMainWindow):
    def __init__(self, context: FrontDeskContext, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._context = context
        self.setWindowTitle("Front Desk")
        self.setMinimumSize(720, 560)
        self.resize(960, 720)

        root = QWidget(self)
        root.setObjectName("FrontDeskRoot")
        layout = QVBoxLayout(root)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(8)

        self.auth_banner = AuthBanner(context.identity, root)
        layout.addWidget(self.auth_banner, 0)
        self.notification_banner = NotificationBanner(context.notifications, root)
        layout.addWidget(self.notification_banner, 0)

        self.tabs = QTabWidget(root)
        self.panels: list[EntryPanel] = []
        for workspace in context.workspaces:
            panel = EntryPanel(workspace, context.identity, self.tabs)
            self.panels.append(panel)
            self.tabs.addTab(panel, workspace.schema.title)
        layout.addWidget(self.tabs, 1)
        self.setCentralWidget(root)

        context.identity.identity_changed.connect(self._on_identity_changed)

    def closeEvent(self, event: QCloseEvent) -> None:
        self._context.shutdown()
        super().closeEvent(event)

    def _on_identity_changed(self, identity: Identity | None) -> None:
        self._context.state_streamer.record(
            "identity.changed",
            source="app.main",
            payload={
                "signed_in": identity is not None,
                "anonymous": identity.anonymous if identity is not None else None,
            },
        )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="frontdesk", description="Front desk visit and resident register.")
    parser.add_argument("--backend", choices=SUPPORTED_BACKENDS, default=None)
    parser.add_argument("--data-folder", dest="data_folder", default=None)
    parser.add_argument("--token", dest="auth_token", default=None)
    return parser


def _relay_stream_event(event: StreamEvent) -> None:
    db_debug("stream.event", event_type=event.event_type, source=event.source, payload=event.payload)


def run(argv: Sequence[str] | None = None) -> int:
    arguments = list(sys.argv[1:] if argv is None else argv)
    options = build_arg_parser().parse_args(arguments)

    QApplication.setAttribute(Qt.ApplicationAttribute.AA_DontCreateNativeWidgetSiblings, True)
    app = QApplication.instance()
    if app is None:
        app = QApplication([sys.argv[0] if sys.argv else "frontdesk"])

    app.setApplicationName("frontdesk")
    app.setApplicationVersion(APP_VERSION)
    theme_mode = "dark" if load_dark_mode(default=False) else "light"
    apply_app_theme(app, mode=theme_mode)

    try:
        config = load_config(vars(options))
    except ConfigurationError as exc:
        AppMessageDialog.show_warning(
            parent=None,
            title="Front desk configuration",
            message="\n".join([str(exc), "", *[f"- {problem}" for problem in exc.problems]]),
        )
        return 2

    state_streamer = StateStreamer()
    state_streamer.subscribe(_relay_stream_event)
    state_streamer.record(
        "app.started",
        source="app.main",
        payload={"backend": config.backend, "theme_mode": theme_mode, "app_version": APP_VERSION},
    )

    context = build_client_context(config, parent=app, state_streamer=state_streamer)
    window = FrontDeskWindow(context)
    window.show()
    context.identity.start()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(run())
