import os
from typing import Optional, Tuple

from talkutils.html_skeleton import PageSkeleton, parse_page_html
from talkutils.models import PageCode


def read_page_files(code_path: str, html_path: Optional[str] = None, config=None,
                    codec=None) -> Tuple[PageCode, Optional[PageSkeleton]]:
    """Read saved page code (and optionally its rendered HTML) for offline work."""
    with open(code_path, "r", encoding="utf-8") as f:
        content = f.read()
    title = os.path.splitext(os.path.basename(code_path))[0]
    if not content.endswith("\n"):
        content += "\n"
    page = PageCode(title=title, content=content)

    skeleton = None
    if html_path:
        with open(html_path, "r", encoding="utf-8") as f:
            skeleton = parse_page_html(f.read(), config, codec)
    return page, skeleton
