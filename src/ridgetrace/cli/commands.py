"""
Command-line interface for ridge detection.
"""

import logging
import sys
from typing import Optional, Sequence

from ..processing.pipeline import main as pipeline_main

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None):
    """Main CLI entry point."""
    try:
        sys.exit(pipeline_main(argv))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Ridge detection failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
