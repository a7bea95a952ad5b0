# chat.py
import argparse
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from assistant import Assistant
from config import load_settings
from errors import AssistantError, ConfigError, StreamInterruptedError
from prompts import CHECK_IN_MESSAGE, build_upload_prompt
from ui import (
    StreamingResponse,
    console,
    display_error,
    display_log,
    display_message,
    display_response,
    display_thinking,
    display_welcome,
    get_user_input,
    live_markdown,
    setup_logging,
)

CHECK_IN_INTERVAL = timedelta(minutes=30)
CHECK_IN_MIN_GAP = timedelta(hours=2)

EXIT_WORDS = ("exit", "quit")


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog="archie", description="Conversational assistant with long-term memory")
    parser.add_argument("prompt", nargs="*", help="Prompt to send")
    parser.add_argument("--fusion", action="store_true", help="Use multi-model fusion mode")
    parser.add_argument("-c", "--clear", action="store_true", help="Clear chat log")
    parser.add_argument("-p", "--personality", default="", help="Set AI personality")
    parser.add_argument("-u", "--user", default="", help="Set user name")
    parser.add_argument("--ai", default="", help="Set AI name")
    parser.add_argument("-b", "--bio", default="", help="Set bio")
    parser.add_argument("-a", "--print-log", action="store_true", help="Print today's log")
    parser.add_argument("-n", "--lines", type=int, default=0, help="Print last N log entries")
    parser.add_argument("-i", "--interactive", action="store_true", help="Interactive mode")
    parser.add_argument("-d", "--daemon", action="store_true", help="Daemon mode (check-ins)")
    parser.add_argument("-t", "--toggle-checkins", action="store_true", help="Toggle check-ins")
    parser.add_argument("-f", "--file", default="", help="Upload file")
    parser.add_argument("--digest", action="store_true", help="Summarize today's log into memory now")
    return parser.parse_args(argv)


def send_chat(assistant: Assistant, prompt: str, fusion: bool) -> bool:
    """Run one turn with live streamed output. Returns False if the turn failed."""
    on_stage = display_thinking if fusion else None
    console.print()
    try:
        with live_markdown() as live:
            view = StreamingResponse(live)
            assistant.respond(prompt, fusion=fusion, on_fragment=view.update, on_stage=on_stage)
    except StreamInterruptedError as e:
        display_error(f"Connection dropped mid-answer ({len(e.partial)} chars received); turn not saved.")
        return False
    except AssistantError as e:
        display_error(f"Error: {e}")
        return False
    return True


def enter_interactive_mode(assistant: Assistant, fusion: bool) -> None:
    display_welcome(assistant.persona_store.get().ai_name)
    while True:
        line = get_user_input()
        if line.lower() in EXIT_WORDS:
            break
        if not line:
            continue
        send_chat(assistant, line, fusion)


def check_in(assistant: Assistant, fusion: bool, now: Optional[datetime] = None) -> bool:
    """Send a check-in if enabled and none went out in the last two hours."""
    now = now or datetime.now()
    state = assistant.state_store.get()
    if not state.check_in_enabled:
        return False
    if state.last_checked and now - state.last_checked < CHECK_IN_MIN_GAP:
        return False
    assistant.state_store.update(last_checked=now)
    return send_chat(assistant, CHECK_IN_MESSAGE, fusion)


def run_as_daemon(assistant: Assistant, fusion: bool) -> None:
    try:
        while True:
            check_in(assistant, fusion)
            time.sleep(CHECK_IN_INTERVAL.total_seconds())
    except KeyboardInterrupt:
        console.print()


def toggle_check_ins(assistant: Assistant) -> None:
    state = assistant.state_store.get()
    state = assistant.state_store.update(check_in_enabled=not state.check_in_enabled)
    display_message(f"check-ins now {'on' if state.check_in_enabled else 'off'}")


def upload_file(assistant: Assistant, path: str, fusion: bool) -> bool:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        display_error(f"read file: {e}")
        return False
    instructions = get_user_input("What should I do with this file? ")
    return send_chat(assistant, build_upload_prompt(instructions, content), fusion)


def print_chat_log(assistant: Assistant, lines: int) -> None:
    turns = assistant.log.read()
    if lines > 0:
        turns = turns[-lines:]
    display_log(turns)


def dispatch(args, assistant: Assistant) -> int:
    fusion = args.fusion or assistant.settings.fusion

    if args.clear:
        assistant.log.clear()
        display_message("chat history cleared")
        return 0
    if args.personality:
        assistant.persona_store.set(personality=args.personality)
        display_message("personality saved")
        return 0
    if args.user or args.ai or args.bio:
        assistant.persona_store.set(user_name=args.user, ai_name=args.ai, bio=args.bio)
        display_message("config updated")
        return 0
    if args.print_log:
        print_chat_log(assistant, args.lines)
        return 0
    if args.interactive:
        enter_interactive_mode(assistant, fusion)
        return 0
    if args.daemon:
        run_as_daemon(assistant, fusion)
        return 0
    if args.toggle_checkins:
        toggle_check_ins(assistant)
        return 0
    if args.file:
        return 0 if upload_file(assistant, args.file, fusion) else 1
    if args.digest:
        try:
            digest = assistant.digest_today()
        except AssistantError as e:
            display_error(f"Digest failed: {e}")
            return 1
        if not digest:
            display_message("nothing to digest today")
            return 0
        display_response(digest)
        display_message("memory updated")
        return 0

    if args.prompt:
        return 0 if send_chat(assistant, " ".join(args.prompt), fusion) else 1

    console.print("No prompt given. Use -h.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
        setup_logging(settings.log_level)
        assistant = Assistant.from_settings(settings)
    except ConfigError as e:
        display_error(f"Configuration error: {e}")
        return 1

    try:
        return dispatch(args, assistant)
    except AssistantError as e:
        display_error(f"Error: {e}")
        return 1
    finally:
        assistant.close()


if __name__ == "__main__":
    sys.exit(main())
