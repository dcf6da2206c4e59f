"""Tests for convergence plotting."""

import matplotlib.pyplot as plt
import numpy as np

from dqicp.icp import registration_step
from dqicp.visualization import plot_convergence


def test_plot_convergence_saves_figure(tmp_path):
    reference = np.random.default_rng(0).uniform(0, 10, size=(50, 3))
    result = registration_step(reference, reference.copy(), seed=0)
    save_path = tmp_path / "convergence.png"

    fig = plot_convergence(result.history, save_path=save_path)

    assert save_path.exists()
    assert len(fig.axes) == 2
    plt.close(fig)


def test_plot_convergence_without_saving():
    history = [{'dt': 1.0, 'dth': 0.1, 'dmax': 200.0}, {'dt': 0.0, 'dth': 0.0, 'dmax': 3.0}]

    fig = plot_convergence(history, save_path=None)

    assert fig is not None
    plt.close(fig)
