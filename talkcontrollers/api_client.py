"""
Thin MediaWiki Action API client over ``requests``: loads page code and
rendered HTML, submits edits and maps API failures onto the error taxonomy.
"""

import logging
from typing import Optional

import requests

from talkutils.config import log_event
from talkutils.errors import ApiError, NetworkError
from talkutils.models import PageCode

API_ERROR_CODES = {
    "missingtitle": "missing",
    "missing": "missing",
    "invalidtitle": "invalid",
    "invalid": "invalid",
    "nosuchsection": "noSuchSection",
    "editconflict": "editconflict",
    "spamblacklist": "spamblacklist",
}


def map_api_error(error: dict) -> ApiError:
    code = error.get("code", "")
    return ApiError(API_ERROR_CODES.get(code, "unknown"), details={"code": code, "info": error.get("info", "")})


class MediaWikiApi:
    def __init__(self, config, api_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.api_url = api_url or config.api_url
        if not self.api_url:
            raise ValueError("No API URL configured (set TALK_API_URL or pass --api-url)")
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": config.user_agent})
        self.timeout = config.request_timeout

    def request(self, params: dict, post: bool = False) -> dict:
        params = dict(params, format="json", formatversion=2)
        try:
            if post:
                response = self.session.post(self.api_url, data=params, timeout=self.timeout)
            else:
                response = self.session.get(self.api_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            log_event(logging.WARNING, "API request failed", action=params.get("action"), error=e)
            raise NetworkError("request", details={"error": str(e)}) from e
        except ValueError as e:
            raise ApiError("noData", details={"error": str(e)}) from e

        if not isinstance(data, dict):
            raise ApiError("noData")
        if "error" in data:
            raise map_api_error(data["error"])
        return data

    def load_code(self, title: str, section: Optional[int] = None) -> PageCode:
        params = {
            "action": "query",
            "titles": title,
            "prop": "revisions",
            "rvslots": "main",
            "rvprop": "ids|content|timestamp",
            "redirects": 1,
            "curtimestamp": 1,
        }
        if section is not None:
            params["rvsection"] = section
        data = self.request(params)

        pages = (data.get("query") or {}).get("pages") or []
        if not pages:
            raise ApiError("noData")
        page = pages[0]
        if page.get("missing"):
            raise ApiError("missing", details={"title": title})
        if page.get("invalid"):
            raise ApiError("invalid", details={"title": title, "info": page.get("invalidreason", "")})

        revision = (page.get("revisions") or [None])[0]
        if not revision:
            raise ApiError("noData")
        content = revision["slots"]["main"].get("content", "")
        log_event(logging.DEBUG, "Code loaded", title=page["title"], revision=revision.get("revid"),
                  section=section, length=len(content))
        # Every line of the code, the last one included, ends with a newline
        return PageCode(
            title=page["title"],
            content=content + "\n",
            revision_id=revision.get("revid"),
            query_timestamp=data.get("curtimestamp"),
            base_timestamp=revision.get("timestamp"),
            section=section,
        )

    def load_html(self, title: str) -> str:
        data = self.request({"action": "parse", "page": title, "prop": "text", "redirects": 1})
        parsed = data.get("parse")
        if not parsed or "text" not in parsed:
            raise ApiError("noData")
        return parsed["text"]

    def fetch_edit_token(self) -> str:
        data = self.request({"action": "query", "meta": "tokens", "type": "csrf"})
        try:
            return data["query"]["tokens"]["csrftoken"]
        except KeyError as e:
            raise ApiError("noData") from e

    def submit_edit(self, title: str, text: str, summary: str, basetimestamp: Optional[str],
                    starttimestamp: Optional[str], section: Optional[int] = None) -> str:
        params = {
            "action": "edit",
            "title": title,
            "text": text,
            "summary": summary,
            "token": self.fetch_edit_token(),
            "nocreate": 1,
        }
        if basetimestamp:
            params["basetimestamp"] = basetimestamp
        if starttimestamp:
            params["starttimestamp"] = starttimestamp
        if section is not None:
            params["section"] = section
        data = self.request(params, post=True)

        edit = data.get("edit")
        if not edit:
            raise ApiError("noData")
        if edit.get("result") == "Success":
            log_event(logging.INFO, "Edit saved", title=title, revision=edit.get("newrevid"))
            return "success"
        if "spamblacklist" in edit:
            raise ApiError("spamblacklist", details={"match": edit["spamblacklist"]})
        raise ApiError("unknown", details=edit)
