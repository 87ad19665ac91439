import argparse
import sys
from pathlib import Path

from docseal.config.settings import Settings
from docseal.database.connection import close_pool, init_pool
from docseal.database.repositories.version_repository import VersionRepository
from docseal.exceptions import DocSealError
from docseal.logging.logger import Log
from docseal.verification.integrity import IntegrityVerifier
from docseal.verification.models import IntegrityOutcome

EXIT_CODES = {
    IntegrityOutcome.VALID: 0,
    IntegrityOutcome.INVALID: 1,
    IntegrityOutcome.NOT_FINALIZED: 2,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="docseal",
        description="Verify a local PDF against the sealed hash of a stored version.",
    )
    parser.add_argument("version_id", help="Document version id")
    parser.add_argument("file", type=Path, help="PDF file to check")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point: initialize pool -> verify file -> report outcome."""
    args = parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)

    candidate = args.file.read_bytes()
    init_pool(settings)
    try:
        result = IntegrityVerifier(VersionRepository()).verify_version(args.version_id, candidate)
    except DocSealError as exc:
        Log.error(f"Verification failed: {exc}")
        return 3
    finally:
        close_pool()

    Log.info(
        f"{result.outcome.value}: stored={result.stored_hash} "
        f"recalculated={result.recalculated_hash}"
    )
    return EXIT_CODES[result.outcome]


if __name__ == "__main__":
    sys.exit(main())
