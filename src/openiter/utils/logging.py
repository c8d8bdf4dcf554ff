"""Logging setup for drivers and scripts built on openiter."""

import logging


def setup_logging(debug_mode: bool = False) -> None:
    """Set up logging configuration.

    Args:
        debug_mode: Whether to enable debug logging
    """
    log_level = logging.DEBUG if debug_mode else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Quiet down third-party libraries that log at INFO
    logging.getLogger('matplotlib').setLevel(logging.WARNING)
    logging.getLogger('h5py').setLevel(logging.WARNING)
