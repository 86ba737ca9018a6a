"""
Application context derived from accessibility data.

The host platform hands us an opaque accessibility blob when a session
starts. This module parses it into an AppContext, classifies the focused
application, and builds the "sharedContext" object the cloud backend expects.
"""

from typing import Any, Dict, Optional

from .types import AccessibilityContext, AppContext


# Application classification by bundle identifier
EMAIL_APPS = {
    "com.apple.mail",
    "com.microsoft.Outlook",
    "com.readdle.smartemail-Mac",
    "com.superhuman.electron",
}

CHAT_APPS = {
    "com.tinyspeck.slackmacgap",
    "com.hnc.Discord",
    "com.microsoft.teams",
    "com.microsoft.teams2",
    "ru.keepcoder.Telegram",
    "net.whatsapp.WhatsApp",
    "com.apple.MobileSMS",
}

CODE_APPS = {
    "com.microsoft.VSCode",
    "com.todesktop.230313mzl4w4u92",  # Cursor
    "com.jetbrains.pycharm",
    "com.jetbrains.intellij",
    "com.apple.dt.Xcode",
    "dev.zed.Zed",
}

DOCUMENT_APPS = {
    "com.microsoft.Word",
    "com.apple.iWork.Pages",
    "com.apple.Notes",
    "md.obsidian",
    "notion.id",
}

TERMINAL_APPS = {
    "com.apple.Terminal",
    "com.googlecode.iterm2",
    "dev.warp.Warp-Stable",
}

# Web apps, matched against the window URL
URL_APP_TYPES = [
    ("mail.google.com", "email"),
    ("outlook.live.com", "email"),
    ("outlook.office.com", "email"),
    ("app.slack.com", "chat"),
    ("discord.com", "chat"),
    ("web.whatsapp.com", "chat"),
    ("github.com", "code"),
    ("gitlab.com", "code"),
    ("docs.google.com", "document"),
    ("notion.so", "document"),
]


def _get(blob: Optional[Dict[str, Any]], *path: str) -> Any:
    """Walk nested dicts, returning None when any key is missing."""
    node: Any = blob
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def parse_app_context(accessibility: Optional[AccessibilityContext]) -> Optional[AppContext]:
    """
    Parse the accessibility blob into an AppContext.

    Returns:
        AppContext, or None if no accessibility data was captured
    """
    if not accessibility:
        return None

    context = AppContext(
        app_name=_get(accessibility, "context", "application", "name") or "",
        bundle_id=_get(accessibility, "context", "application", "bundleIdentifier") or "",
        window_title=_get(accessibility, "context", "windowInfo", "title") or "",
        url=_get(accessibility, "context", "windowInfo", "url") or "",
        selected_text=_get(accessibility, "context", "textSelection", "selectedText") or "",
        before_text=_get(accessibility, "context", "textSelection", "preSelectionText") or "",
        after_text=_get(accessibility, "context", "textSelection", "postSelectionText") or "",
    )
    context.app_type = detect_application_type(accessibility)
    return context


def detect_application_type(accessibility: Optional[AccessibilityContext]) -> str:
    """Classify the focused application for prompt tailoring."""
    if not accessibility:
        return "default"

    url = (_get(accessibility, "context", "windowInfo", "url") or "").lower()
    for pattern, app_type in URL_APP_TYPES:
        if pattern in url:
            return app_type

    bundle_id = _get(accessibility, "context", "application", "bundleIdentifier") or ""
    if bundle_id in EMAIL_APPS:
        return "email"
    if bundle_id in CHAT_APPS:
        return "chat"
    if bundle_id in CODE_APPS:
        return "code"
    if bundle_id in DOCUMENT_APPS:
        return "document"
    if bundle_id in TERMINAL_APPS:
        return "terminal"
    return "default"


def build_shared_context(accessibility: Optional[AccessibilityContext]) -> Optional[Dict[str, Any]]:
    """
    Build the cloud backend's sharedContext object.

    Returns None when no accessibility data is available, so the field is
    omitted from the request.
    """
    if not accessibility:
        return None

    return {
        "selectedText": _get(accessibility, "context", "textSelection", "selectedText"),
        "beforeText": _get(accessibility, "context", "textSelection", "preSelectionText"),
        "afterText": _get(accessibility, "context", "textSelection", "postSelectionText"),
        "appType": detect_application_type(accessibility),
        "appBundleId": _get(accessibility, "context", "application", "bundleIdentifier"),
        "appName": _get(accessibility, "context", "application", "name"),
        "appUrl": _get(accessibility, "context", "windowInfo", "url"),
        "surroundingContext": "",
    }


def pre_selection_text(accessibility: Optional[AccessibilityContext]) -> Optional[str]:
    """Text before the insertion point, or None if unknown."""
    return _get(accessibility, "context", "textSelection", "preSelectionText")
