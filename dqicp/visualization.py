"""Visualization utilities for ICP results."""

import matplotlib.pyplot as plt
import numpy as np


def plot_convergence(history, save_path='icp_convergence.png', show=False):
    """
    Plot ICP convergence curves.

    Args:
        history: List of per-iteration dictionaries with 'dt', 'dth' and
                 'dmax' keys (``RegistrationResult.history``)
        save_path: Path to save the plot, or None to skip saving
        show: Whether to open an interactive window

    Returns:
        The matplotlib Figure
    """
    iterations = np.arange(len(history))
    dt = [h['dt'] for h in history]
    dth = [h['dth'] for h in history]
    dmax = [h['dmax'] for h in history]

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6))

    # Incremental motion per iteration
    ax1.semilogy(iterations, np.maximum(dt, 1e-16), marker='o', linewidth=2,
                 markersize=4, color='#2E86AB', label='Translation step')
    ax1.semilogy(iterations, np.maximum(dth, 1e-16), marker='s', linewidth=2,
                 markersize=4, color='#E07A5F', label='Rotation step (rad)')
    ax1.axhline(y=0.01, color='red', linestyle='--', linewidth=1.5,
                alpha=0.7, label='Convergence tolerance')
    ax1.set_xlabel('Iteration', fontsize=12)
    ax1.set_ylabel('Step size', fontsize=12)
    ax1.set_title('Incremental Motion', fontsize=14, fontweight='bold')
    ax1.grid(True, alpha=0.3)
    ax1.legend(loc='best')

    # Adaptive rejection threshold
    ax2.plot(iterations, dmax, marker='o', linewidth=2, markersize=4,
             color='green', label='Dmax')
    ax2.set_xlabel('Iteration', fontsize=12)
    ax2.set_ylabel('Squared distance threshold', fontsize=12)
    ax2.set_title('Outlier Threshold', fontsize=14, fontweight='bold')
    ax2.grid(True, alpha=0.3)
    ax2.legend(loc='best')

    plt.tight_layout()
    if save_path is not None:
        plt.savefig(save_path, dpi=150)
        print(f"Convergence plot saved to '{save_path}'")
    if show:
        plt.show()
    return fig
