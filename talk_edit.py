"""
Command line entry: locate a section or a comment of a talk page in its
wikitext and reply, add topics, edit or delete comments.

Offline: ``--code-file`` (wikitext) and ``--html-file`` (rendered page); the
new code is printed or written to ``--output``. Online: ``--title`` with
``--api-url`` (or ``TALK_API_URL``); the edit is submitted.
"""

import sys
import json
import logging
import argparse
from dataclasses import asdict

from talkcontrollers.api_client import MediaWikiApi
from talkcontrollers.edit_controller import (
    handle_add_section,
    handle_add_subsection,
    handle_delete,
    handle_edit,
    handle_reply,
    handle_reply_in_section,
    prepare_add_section,
    prepare_add_subsection,
    prepare_delete,
    prepare_edit,
    prepare_reply,
    prepare_reply_in_section,
)
from talkcontrollers.read_from_file import read_page_files
from talkutils.config import load_config, log_event, setup_logging
from talkutils.errors import DiscussionError
from talkutils.html_skeleton import parse_page_html
from talkutils.source_matcher import locate_comment, locate_section
from talkutils.timestamp_codec import TimestampCodec


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="talk-edit", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--config", help="JSON file with site settings")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING ...")

    source = argparse.ArgumentParser(add_help=False)
    source.add_argument("--code-file", help="Saved page wikitext")
    source.add_argument("--html-file", help="Saved rendered page HTML")
    source.add_argument("--title", help="Page title (online mode)")
    source.add_argument("--api-url", help="api.php URL (online mode)")
    source.add_argument("--output", help="Write the new code here instead of stdout")
    source.add_argument("--summary", help="Edit summary")

    target = argparse.ArgumentParser(add_help=False)
    group = target.add_mutually_exclusive_group()
    group.add_argument("--comment", type=int, metavar="INDEX", help="Comment number in page order")
    group.add_argument("--section", type=int, metavar="INDEX", help="Section number in page order")

    message = argparse.ArgumentParser(add_help=False)
    message.add_argument("--text", help="Message text, '-' reads stdin")
    message.add_argument("--text-file", help="Read the message from a file")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("locate", parents=[source, target], help="Show where a section or a comment is in the code")
    sub.add_parser("reply", parents=[source, target, message], help="Reply to a comment or at the end of a section")
    p = sub.add_parser("add-subsection", parents=[source, target, message], help="Add a subsection to a section")
    p.add_argument("--headline", required=True)
    p = sub.add_parser("add-section", parents=[source, message], help="Start a new topic")
    p.add_argument("--headline", required=True)
    p = sub.add_parser("edit", parents=[source, target, message], help="Replace the text of a comment")
    p.add_argument("--headline", help="New headline when editing the opening comment")
    sub.add_parser("delete", parents=[source, target], help="Delete a comment without replies")
    return parser


def _read_text(args) -> str:
    if getattr(args, "text_file", None):
        with open(args.text_file, "r", encoding="utf-8") as f:
            return f.read()
    text = getattr(args, "text", None)
    if text == "-":
        return sys.stdin.read()
    if text is None:
        raise SystemExit("A message is required: use --text or --text-file")
    return text


def _pick_target(args, skeleton):
    if args.comment is not None:
        if not 0 <= args.comment < len(skeleton.comments):
            raise SystemExit(f"No comment #{args.comment} (the page has {len(skeleton.comments)})")
        return skeleton.comments[args.comment], None
    if args.section is not None:
        if not 0 <= args.section < len(skeleton.sections):
            raise SystemExit(f"No section #{args.section} (the page has {len(skeleton.sections)})")
        return None, skeleton.sections[args.section]
    raise SystemExit("Choose a target with --comment or --section")


def _match_to_json(match) -> str:
    return json.dumps(asdict(match), ensure_ascii=False, indent=2)


def run_offline(args, config, codec) -> str:
    if not args.code_file:
        raise SystemExit("Offline mode needs --code-file")
    page, skeleton = read_page_files(args.code_file, args.html_file, config, codec)
    code = page.content

    if args.command == "add-section":
        return prepare_add_section(code, args.headline, _read_text(args), config, codec)
    if skeleton is None:
        raise SystemExit("This command needs --html-file to know the sections and comments")
    comment, section = _pick_target(args, skeleton)

    if args.command == "locate":
        if comment is not None:
            return _match_to_json(locate_comment(code, comment, config, codec))
        return _match_to_json(locate_section(code, section, config, codec))
    if args.command == "reply":
        if comment is not None:
            return prepare_reply(code, comment, _read_text(args), config, codec)
        return prepare_reply_in_section(code, section, _read_text(args), config, codec)
    if args.command == "add-subsection":
        section = section or comment.section
        return prepare_add_subsection(code, section, args.headline, _read_text(args), config, codec)
    if comment is None:
        raise SystemExit("This command needs --comment")
    if args.command == "edit":
        return prepare_edit(code, comment, _read_text(args), config, codec, headline=args.headline)
    return prepare_delete(code, comment, config, codec)


def run_online(args, config, codec) -> str:
    api = MediaWikiApi(config, api_url=args.api_url)
    title = args.title
    summary = args.summary

    if args.command == "add-section":
        return handle_add_section(api, title, args.headline, _read_text(args), config, codec, summary)

    skeleton = parse_page_html(api.load_html(title), config, codec)
    comment, section = _pick_target(args, skeleton)

    if args.command == "locate":
        code = api.load_code(title).content
        if comment is not None:
            return _match_to_json(locate_comment(code, comment, config, codec))
        return _match_to_json(locate_section(code, section, config, codec))
    if args.command == "reply":
        if comment is not None:
            return handle_reply(api, title, comment, _read_text(args), config, codec, summary)
        return handle_reply_in_section(api, title, section, _read_text(args), config, codec, summary)
    if args.command == "add-subsection":
        section = section or comment.section
        return handle_add_subsection(api, title, section, args.headline, _read_text(args), config, codec, summary)
    if comment is None:
        raise SystemExit("This command needs --comment")
    if args.command == "edit":
        return handle_edit(api, title, comment, _read_text(args), config, codec, summary, args.headline)
    return handle_delete(api, title, comment, config, codec, summary)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    overrides = {"api_url": args.api_url} if getattr(args, "api_url", None) else {}
    config = load_config(args.config, **overrides)
    codec = TimestampCodec.from_config(config)

    try:
        if args.title:
            result = run_online(args, config, codec)
        else:
            result = run_offline(args, config, codec)
    except DiscussionError as e:
        log_event(logging.INFO, "Command failed", command=args.command, error=e.key)
        print(f"{e.type}/{e.code}: {e.message}", file=sys.stderr)
        return 2 if e.is_recoverable else 1

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(result)
    else:
        sys.stdout.write(result if result.endswith("\n") else result + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
