import pytest
import requests

from talkcontrollers.api_client import MediaWikiApi, map_api_error
from talkutils.errors import ApiError, NetworkError

API_URL = "https://wiki.example.org/w/api.php"


class FakeResponse:
    def __init__(self, data, status=200):
        self.data = data
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.data, Exception):
            raise self.data
        return self.data


class FakeSession:
    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, params):
        self.calls.append((method, params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, params=None, timeout=None):
        return self._next("GET", params)

    def post(self, url, data=None, timeout=None):
        return self._next("POST", data)


def _api(config, *responses):
    session = FakeSession(*responses)
    return MediaWikiApi(config, api_url=API_URL, session=session), session


def test_api_url_is_required(config):
    with pytest.raises(ValueError):
        MediaWikiApi(config)


def test_user_agent_is_sent(config):
    _, session = _api(config)
    assert session.headers["User-Agent"] == config.user_agent


def test_load_code(config):
    api, session = _api(config, FakeResponse({
        "curtimestamp": "2024-01-02T00:00:00Z",
        "query": {"pages": [{
            "title": "Talk:Example",
            "revisions": [{
                "revid": 42,
                "timestamp": "2024-01-01T00:00:00Z",
                "slots": {"main": {"content": "== A ==\ntext"}},
            }],
        }]},
    }))
    page = api.load_code("Talk:Example")
    assert page.content == "== A ==\ntext\n"
    assert page.revision_id == 42
    assert page.base_timestamp == "2024-01-01T00:00:00Z"
    assert page.query_timestamp == "2024-01-02T00:00:00Z"
    method, params = session.calls[0]
    assert method == "GET"
    assert params["format"] == "json" and params["formatversion"] == 2


def test_missing_page(config):
    api, _ = _api(config, FakeResponse({"query": {"pages": [{"title": "Talk:Nope", "missing": True}]}}))
    with pytest.raises(ApiError) as info:
        api.load_code("Talk:Nope")
    assert info.value.key == "api.missing"


def test_api_error_codes_are_mapped(config):
    api, _ = _api(config, FakeResponse({"error": {"code": "nosuchsection", "info": "There is no section 9."}}))
    with pytest.raises(ApiError) as info:
        api.request({"action": "query"})
    assert info.value.code == "noSuchSection"
    assert info.value.details["info"] == "There is no section 9."
    assert map_api_error({"code": "whatever"}).code == "unknown"


def test_network_failure(config):
    api, _ = _api(config, requests.ConnectionError("down"))
    with pytest.raises(NetworkError) as info:
        api.load_html("Talk:Example")
    assert info.value.key == "network.request"


def test_bad_json(config):
    api, _ = _api(config, FakeResponse(ValueError("not json")))
    with pytest.raises(ApiError) as info:
        api.load_html("Talk:Example")
    assert info.value.code == "noData"


def test_submit_edit(config):
    api, session = _api(
        config,
        FakeResponse({"query": {"tokens": {"csrftoken": "abc+\\"}}}),
        FakeResponse({"edit": {"result": "Success", "newrevid": 43}}),
    )
    result = api.submit_edit("Talk:Example", "new text", "summary", "2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")
    assert result == "success"
    method, data = session.calls[1]
    assert method == "POST"
    assert data["token"] == "abc+\\"
    assert data["basetimestamp"] == "2024-01-01T00:00:00Z"
    assert data["nocreate"] == 1


def test_submit_edit_conflict(config):
    api, _ = _api(
        config,
        FakeResponse({"query": {"tokens": {"csrftoken": "abc"}}}),
        FakeResponse({"error": {"code": "editconflict", "info": "Edit conflict."}}),
    )
    with pytest.raises(ApiError) as info:
        api.submit_edit("Talk:Example", "new text", "summary", None, None)
    assert info.value.code == "editconflict"
    assert info.value.is_recoverable


def test_spam_blacklist(config):
    api, _ = _api(
        config,
        FakeResponse({"query": {"tokens": {"csrftoken": "abc"}}}),
        FakeResponse({"edit": {"result": "Failure", "spamblacklist": "spam.example"}}),
    )
    with pytest.raises(ApiError) as info:
        api.submit_edit("Talk:Example", "new text", "summary", None, None)
    assert info.value.code == "spamblacklist"
