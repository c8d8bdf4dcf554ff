"""Convergence-history tables and plots."""

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class ConvergenceHistoryWriter:
    """Writes the convergence history of one zone as CSV."""

    def __init__(self, output_dir: Union[str, Path], zone: int = 0,
                 filename: str = "history"):
        self.output_dir = Path(output_dir)
        self.path = self.output_dir / (f"{filename}.csv" if zone == 0 else f"{filename}_{zone}.csv")

    def write(self, history: pd.DataFrame) -> Path:
        """Overwrite the CSV file with the full history."""
        os.makedirs(self.output_dir, exist_ok=True)
        history.to_csv(self.path, index=False)
        logger.debug(f"Wrote {len(history)} history rows to {self.path}")
        return self.path

    def read(self) -> pd.DataFrame:
        return pd.read_csv(self.path)


def plot_convergence(history: pd.DataFrame, fields: List[str],
                     save_path: Union[str, Path], log_scale: Optional[List[str]] = None) -> Path:
    """Plot monitored fields against the inner iteration.

    Args:
        history: Convergence history, one row per iteration
        fields: Columns to plot
        save_path: Image file to write
        log_scale: Columns plotted as log10 of their absolute value

    Returns:
        Path of the saved figure
    """
    log_scale = log_scale or []
    fig, ax = plt.subplots(figsize=(10, 6))

    x = np.arange(len(history)) if 'inner_iter' not in history else history['inner_iter'].to_numpy()
    for name in fields:
        if name not in history:
            logger.warning(f"Field '{name}' not in convergence history, skipping")
            continue
        values = history[name].to_numpy(dtype=float)
        if name in log_scale:
            values = np.log10(np.maximum(np.abs(values), 1e-300))
            label = f"log10({name})"
        else:
            label = name
        ax.plot(x, values, label=label)

    ax.set_xlabel('Iteration')
    ax.grid(True, alpha=0.3)
    ax.legend()

    save_path = Path(save_path)
    plt.tight_layout()
    plt.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.info(f"Saved convergence plot to {save_path}")
    return save_path
