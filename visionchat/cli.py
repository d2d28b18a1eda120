"""
Command line entry point: process one video, print its captions and summary,
then answer questions about it.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from visionchat.config.settings import MAX_FRAMES, PipelineConfig, VisionChatConfig, load_settings
from visionchat.exceptions import VisionChatException
from visionchat.utils.logging_config import log_manager
from visionchat.video_pipeline.core.model_gateway import create_model_gateway
from visionchat.video_pipeline.core.models import FailureEvent, RunStatus
from visionchat.video_pipeline.session import VisionChatSession


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visionchat",
        description="Caption, summarize and chat about a short video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  visionchat clip.mp4
  visionchat clip.mp4 --frames 5 --question 'What is the person holding?'
  visionchat clip.mov --interactive
        """
    )
    parser.add_argument(
        'video',
        type=str,
        help='Path to a video file (up to 2 minutes / 200MB)'
    )
    parser.add_argument(
        '--frames',
        type=int,
        default=None,
        help=f'Number of frames to sample, 1-{MAX_FRAMES} (default: from configuration)'
    )
    parser.add_argument(
        '--question', '-q',
        action='append',
        default=[],
        help='Question to ask about the video; may be repeated'
    )
    parser.add_argument(
        '--interactive', '-i',
        action='store_true',
        help='Keep asking for questions on stdin until an empty line or EOF'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Only print warnings and errors from the pipeline'
    )
    return parser


def _print_failure(event: FailureEvent) -> None:
    print(f"[{event.title}] {event.message}", file=sys.stderr)


async def run(args: argparse.Namespace) -> int:
    config = VisionChatConfig()
    log_manager.configure(config.logging)
    if args.quiet:
        log_manager.disable_console()
        log_manager.enable_console(level="WARNING")
    overrides = {"max_frames": args.frames} if args.frames is not None else {}
    pipeline_config: PipelineConfig = load_settings(PipelineConfig, **overrides)

    session = VisionChatSession(create_model_gateway(config), config=pipeline_config)
    session.subscribe_failures(_print_failure)
    session.subscribe_progress(lambda percent, status: logger.info(f"{percent:5.1f}% {status}"))

    try:
        try:
            await session.load_video_file(args.video)
        except VisionChatException:
            return 1

        run_result = await session.process()
        if run_result.status != RunStatus.COMPLETED:
            return 1

        print("-" * 80)
        for record in session.captions:
            print(f"[{record.frame.timestamp:6.2f}s] {record.caption}")
        print("-" * 80)
        print(f"Summary: {session.summary}")
        print("-" * 80)

        for question in args.question:
            await _ask(session, question)

        if args.interactive:
            loop = asyncio.get_running_loop()
            while True:
                try:
                    question = await loop.run_in_executor(None, input, "You: ")
                except EOFError:
                    break
                if not question.strip():
                    break
                await _ask(session, question)
        return 0
    finally:
        await session.close()


async def _ask(session: VisionChatSession, question: str) -> None:
    try:
        turn = await session.ask(question)
    except VisionChatException as e:
        print(f"Cannot ask: {e.message}", file=sys.stderr)
        return
    if turn is not None:
        print(f"You: {question.strip()}")
        print(f"Assistant: {turn.content}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    log_manager.enable_console()
    try:
        return asyncio.run(run(args))
    except VisionChatException as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
