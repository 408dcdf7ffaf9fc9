import math
import numpy as np


def cartesian_product(*arrays) -> np.ndarray:
    """
    Cartesian product of the provided vectors A x B x C ..., keeping
    the order of loops from the right most array.

    Args:
        *arrays (array_like): 1D arrays to use for the Cartesian product

    Returns:
        np.ndarray: (prod(len(a)), len(arrays)) array of combinations
    """
    arrays = [np.asarray(a) for a in arrays]
    la = len(arrays)
    dtype = np.result_type(*arrays)
    arr = np.empty([len(a) for a in arrays] + [la], dtype=dtype)
    for i, a in enumerate(np.ix_(*arrays)):
        arr[..., i] = a
    return arr.reshape(-1, la)


def cell_range(lower, upper) -> np.ndarray:
    "All integer cell offsets with lower <= hkl <= upper, sorted by |hkl|"
    cells = cartesian_product(
        *(np.arange(lo, hi + 1) for lo, hi in zip(lower, upper))
    ).astype(int)
    order = np.argsort(np.abs(cells).sum(axis=1), kind="stable")
    return cells[order]


def wrap_fractional(frac: np.ndarray) -> np.ndarray:
    "Wrap fractional coordinates into [0, 1)"
    result = np.fmod(frac + 7.0, 1.0)
    result[np.isclose(result, 1.0, atol=1e-12)] = 0.0
    return result


def wrapped_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    "Difference a - b reduced to the nearest lattice image"
    diff = a - b
    return diff - np.round(diff)


def rmsd_points(A, B) -> float:
    """
    Root mean squared deviation between two (N, D) point sets
    in corresponding order, without any reorientation.
    """
    diff = np.asarray(B) - np.asarray(A)
    if diff.shape[0] == 0:
        return 0.0
    return np.sqrt(np.vdot(diff, diff) / diff.shape[0])


def gcd3(h: int, k: int, l: int) -> int:
    return math.gcd(math.gcd(h, k), math.gcd(k, l))
