import argparse
import logging
import os
import pathlib
import sys

from dotenv import find_dotenv, load_dotenv

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from src.app.client.api_client import HttpPipelineBackend
from src.app.domain.errors import PipelineError
from src.app.domain.models import UploadJob
from src.app.services.upload_flow import UploadFlow


def print_stage(job: UploadJob) -> None:
    print(f"[{job.progress_percent:5.1f}%] {job.stage.value}")


def main() -> int:
    load_dotenv(find_dotenv())

    parser = argparse.ArgumentParser(description="Upload a recording and run the full processing pipeline")
    parser.add_argument("path", help="Local audio or video file")
    parser.add_argument("--title", help="Title of the upload (defaults to the file name)")
    parser.add_argument("--api-url", default=os.getenv("CONTENTKLIPA_API_URL", "http://localhost:8000"))
    parser.add_argument("--token", default=os.getenv("CONTENTKLIPA_ACCESS_TOKEN"), help="Supabase access token")
    parser.add_argument("--platform", action="append", dest="platforms", help="Repeatable; default linkedin and twitter")
    parser.add_argument("--tone", default="professional")
    parser.add_argument("--poll-interval", type=float, default=5.0)
    parser.add_argument("--max-polls", type=int, default=120)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if not args.token:
        parser.error("missing access token (use --token or CONTENTKLIPA_ACCESS_TOKEN)")

    path = pathlib.Path(args.path)
    title = args.title or path.stem

    backend = HttpPipelineBackend(args.api_url, args.token)
    flow = UploadFlow(
        backend,
        poll_interval_seconds=args.poll_interval,
        max_poll_attempts=args.max_polls,
        platforms=args.platforms or ("linkedin", "twitter"),
        tone=args.tone,
        on_change=print_stage,
    )

    try:
        outcome = flow.run(title, path)
    except PipelineError as error:
        print(f"failed at {error.step}: {error.message}", file=sys.stderr)
        return 1
    finally:
        backend.close()

    print("media_id:", outcome.media_id)
    print("clips suggested:", outcome.clip_count)
    print("content generated:", ", ".join(outcome.generated_platforms))
    print("timings_ms:", outcome.diagnostics.get("timings_ms"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
