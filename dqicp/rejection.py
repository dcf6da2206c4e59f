"""Adaptive correspondence rejection for ICP."""

import numpy as np

from .utils import time_function

NUM_BINS = 25
NUM_SAMPLES = 100
HISTOGRAM_MARGIN = 1.05
VALLEY_RATIO = 0.6
# Lower bound on sigma in the sigma-editing branches; keeps Dmax above the
# observed distances when they are all identical (e.g. a perfect alignment).
SIGMA_FLOOR = 1e-9


def filter_correspondences(nearest_i, nearest_d, dmax):
    """
    Keep a match only if its distance is below ``dmax``.

    Args:
        nearest_i: (N,) nearest reference index per source point (-1 if none)
        nearest_d: (N,) squared nearest neighbor distance per source point
        dmax: Distance threshold

    Returns:
        (N,) reference index per source point, -1 if rejected
    """
    return np.where(np.asarray(nearest_d) < dmax, nearest_i, -1)


def distance_statistics(nearest_d, accepted):
    """
    Mean and standard deviation of the accepted distances, normalized by the
    full source size rather than the number of accepted matches.

    Returns:
        Tuple of (mu, sigma)
    """
    nearest_d = np.asarray(nearest_d, dtype=float)
    n = nearest_d.shape[0]
    kept = nearest_d[accepted]
    mu = kept.sum() / n
    variance = (kept * kept).sum() / n - mu * mu
    return float(mu), float(np.sqrt(max(variance, 0.0)))


def choose_xi(nearest_d, rng, num_bins=NUM_BINS, num_samples=NUM_SAMPLES,
              margin=HISTOGRAM_MARGIN, valley_ratio=VALLEY_RATIO):
    """
    Estimate an inlier threshold from the first valley after the main peak
    of the distance histogram.

    The histogram range is bounded by the largest of ``num_samples`` randomly
    sampled distances, inflated by ``margin``. Distances at or beyond the
    bound fall into an extra overflow bin.

    Args:
        nearest_d: (N,) nearest neighbor distances
        rng: numpy.random.Generator used for the sampling step
        num_bins: Number of equal-width bins below the bound
        num_samples: Number of distances sampled for the bound
        margin: Inflation factor applied to the sampled maximum
        valley_ratio: A valley must be at most this fraction of the peak

    Returns:
        Threshold at the lower edge of the valley bin, or the bound itself
        when the histogram has no valley
    """
    nearest_d = np.asarray(nearest_d, dtype=float)
    samples = rng.integers(0, nearest_d.shape[0], size=num_samples)
    upper = nearest_d[samples].max() * margin
    if not upper > 0:
        # every sample hit a perfect match; fall back to the full scan
        upper = nearest_d.max() * margin
        if not upper > 0:
            return 0.0

    # build histogram
    bins = np.minimum(np.floor(num_bins * nearest_d / upper), num_bins).astype(np.int64)
    counts = np.bincount(bins, minlength=num_bins + 1)

    # find biggest peak
    peak = int(np.argmax(counts))
    elevation = counts[peak]

    # find first valley after peak (lower than valley_ratio of peak height)
    for valley in range(peak + 1, num_bins):
        if counts[valley] > elevation * valley_ratio:
            continue
        if counts[valley + 1] > counts[valley]:
            return valley / num_bins * upper

    return float(upper)


def update_threshold(mu, sigma, nearest_d, rng, noise_scale=10.0,
                     sigma_floor=SIGMA_FLOOR, **histogram_params):
    """
    Next iteration's Dmax from the distance statistics.

    Args:
        mu, sigma: Output of ``distance_statistics``
        nearest_d: (N,) nearest neighbor distances, for the histogram branch
        rng: numpy.random.Generator for ``choose_xi``
        noise_scale: Noise scale D
        sigma_floor: Minimum sigma used by the sigma-editing branches
        **histogram_params: Forwarded to ``choose_xi``
    """
    D = noise_scale
    sigma = max(sigma, sigma_floor)
    if mu < D:
        return mu + 3 * sigma
    elif mu < 3 * D:
        return mu + 2 * sigma
    elif mu < 6 * D:
        return mu + sigma
    return choose_xi(nearest_d, rng, **histogram_params)


@time_function
def reject_outliers(nearest_i, nearest_d, dmax, rng, noise_scale=10.0,
                    sigma_floor=SIGMA_FLOOR, **histogram_params):
    """
    Two-pass correspondence selection.

    Matches below the current ``dmax`` feed the distance statistics, which
    set the new threshold; the final matches are those below the new one.

    Returns:
        Tuple of (matched (N,) reference indices with -1 for rejected, new dmax)
    """
    nearest_d = np.asarray(nearest_d, dtype=float)
    mu, sigma = distance_statistics(nearest_d, nearest_d < dmax)
    dmax = update_threshold(mu, sigma, nearest_d, rng, noise_scale=noise_scale,
                            sigma_floor=sigma_floor, **histogram_params)
    return filter_correspondences(nearest_i, nearest_d, dmax), float(dmax)
