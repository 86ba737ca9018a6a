"""
Tests for accessibility context parsing.
"""


def blob(bundle_id="", name="", url="", before=None, selected=None, after=None):
    return {
        "context": {
            "application": {"name": name, "bundleIdentifier": bundle_id},
            "windowInfo": {"title": "Window", "url": url},
            "textSelection": {
                "preSelectionText": before,
                "selectedText": selected,
                "postSelectionText": after,
            },
        }
    }


class TestApplicationType:
    """Tests for detect_application_type()."""

    def test_bundle_ids(self):
        from streamscribe.context import detect_application_type

        assert detect_application_type(blob("com.apple.mail")) == "email"
        assert detect_application_type(blob("com.tinyspeck.slackmacgap")) == "chat"
        assert detect_application_type(blob("com.microsoft.VSCode")) == "code"
        assert detect_application_type(blob("com.apple.Notes")) == "document"
        assert detect_application_type(blob("com.googlecode.iterm2")) == "terminal"
        assert detect_application_type(blob("com.example.unknown")) == "default"

    def test_url_wins_over_browser(self):
        from streamscribe.context import detect_application_type

        assert detect_application_type(blob("com.google.Chrome", url="https://mail.google.com/mail/u/0")) == "email"
        assert detect_application_type(blob("com.google.Chrome", url="https://github.com/org/repo")) == "code"

    def test_missing_data(self):
        from streamscribe.context import detect_application_type

        assert detect_application_type(None) == "default"
        assert detect_application_type({}) == "default"
        assert detect_application_type({"context": "garbage"}) == "default"


class TestSharedContext:
    """Tests for the cloud sharedContext object."""

    def test_fields(self):
        from streamscribe.context import build_shared_context

        shared = build_shared_context(blob("com.apple.mail", "Mail", before="Dear Ann,", selected="x", after="Best"))

        assert shared == {
            "selectedText": "x",
            "beforeText": "Dear Ann,",
            "afterText": "Best",
            "appType": "email",
            "appBundleId": "com.apple.mail",
            "appName": "Mail",
            "appUrl": "",
            "surroundingContext": "",
        }

    def test_none_without_blob(self):
        from streamscribe.context import build_shared_context

        assert build_shared_context(None) is None

    def test_parse_app_context(self):
        from streamscribe.context import parse_app_context, pre_selection_text

        app = parse_app_context(blob("com.microsoft.VSCode", "Code", before="def "))

        assert app.app_name == "Code"
        assert app.app_type == "code"
        assert app.before_text == "def "
        assert app.selected_text == ""
        assert parse_app_context(None) is None
        assert pre_selection_text(blob(before="abc")) == "abc"
        assert pre_selection_text(None) is None
