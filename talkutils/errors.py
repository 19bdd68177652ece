"""
Closed error taxonomy shared by the engine and the controllers.

Every failure carries a ``type`` and a ``code`` so that callers can show a
consistent message (``parse/locateComment``, ``api/missing`` ...) instead of a
raw traceback.
"""

MESSAGES = {
    ("parse", "noCode"): "Page code is not loaded.",
    ("parse", "locateSection"): "Couldn't find the section in the page code. The page may have changed.",
    ("parse", "locateComment"): "Couldn't find the comment in the page code. The page may have changed.",
    ("parse", "cantParse"): "The message contains lists that can't be placed inside a numbered list. Remove the list markup.",
    ("parse", "findPlace"): "Couldn't find a safe place to insert the reply.",
    ("parse", "closed"): "The discussion is closed.",
    ("api", "missing"): "The page doesn't exist.",
    ("api", "invalid"): "The page title is invalid.",
    ("api", "noSuchSection"): "The section doesn't exist anymore.",
    ("api", "noData"): "The server returned no data.",
    ("api", "editconflict"): "Edit conflict.",
    ("api", "spamblacklist"): "A link in the message is blacklisted.",
    ("api", "unknown"): "The server returned an error.",
    ("edit", "hasReplies"): "The comment has replies and can't be deleted.",
    ("network", "request"): "Network request failed.",
}


class DiscussionError(Exception):
    """Base error: ``type`` is the family, ``code`` the concrete failure."""

    type = "internal"

    def __init__(self, code, message=None, details=None, type=None):
        if type is not None:
            self.type = type
        self.code = code
        self.details = details or {}
        self.message = message or MESSAGES.get((self.type, code), code)
        super().__init__(f"{self.type}/{self.code}: {self.message}")

    @property
    def key(self) -> str:
        return f"{self.type}.{self.code}"

    @property
    def is_recoverable(self) -> bool:
        # Location failures and server-side page changes are fixed by reloading
        return self.key in (
            "parse.locateSection",
            "parse.locateComment",
            "api.missing",
            "api.invalid",
            "api.noSuchSection",
            "api.editconflict",
        )


class ParseError(DiscussionError):
    type = "parse"


class ApiError(DiscussionError):
    type = "api"


class EditError(DiscussionError):
    type = "edit"


class NetworkError(DiscussionError):
    type = "network"
