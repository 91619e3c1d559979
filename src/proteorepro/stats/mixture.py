"""
Two-component Gaussian mixture fitting for per-sample normalization.

A sample's log-ratios are modeled as a mixture of two normal components:
the dominant population of unchanged features and a second population of
outliers (or a second biological mode). Normalizing with the dominant
component's location and scale instead of the whole-sample median and MAD
keeps a large block of regulated features from dragging the center.

Modes:
    unimodal: Both components share one mean, fixed at the sample's mode. A
        narrow component describes the bulk and a wide one absorbs the tails.
    bimodal: The first component's mean is fixed at the mode; the second
        component's mean is free, so it can settle on a second population.

Determinism:
    EM depends on its starting point. Starting values are computed from the
    data (mode of a kernel density estimate on a fixed grid, MAD around the
    mode, tail moments), so identical input always yields identical output.

References:
    - Dempster, Laird & Rubin (1977) J R Stat Soc B 39(1):1-38
    - Benaglia et al. (2009) mixtools: J Stat Softw 32(6):1-29
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from scipy.special import logsumexp
from scipy.stats import gaussian_kde, norm

from proteorepro.core.errors import ConfigurationError, FitFailure, InternalConsistencyError

logger = logging.getLogger(__name__)

__all__ = [
    'MixtureMode',
    'MixtureFit',
    'MixtureFitter',
    'TwoComponentEM',
    'TwoComponentResult',
    'estimate_mode',
    'fit_two_component',
]

_MAD_TO_SD = 1.4826


class MixtureMode(Enum):
    """Constraint placed on the component means."""

    UNIMODAL = "unimodal"
    BIMODAL = "bimodal"

    @classmethod
    def resolve(cls, mode: MixtureMode | str) -> MixtureMode:
        if isinstance(mode, cls):
            return mode
        try:
            return cls(mode)
        except ValueError:
            valid = [m.value for m in cls]
            raise ConfigurationError(f"Unknown mixture mode '{mode}'. Valid: {valid}")


@dataclass(frozen=True)
class MixtureFit:
    """Fitted parameters of a two-component normal mixture.

    Attributes:
        means: Component means, shape (2,)
        sigmas: Component standard deviations, shape (2,)
        weights: Mixing proportions, shape (2,), summing to 1
        responsibilities: Posterior component probabilities for each finite
            input value, shape (n_finite, 2), in input order
        log_likelihood: Final log-likelihood
        n_iter: EM iterations performed
        converged: Whether the tolerance was reached
        mode: MixtureMode value used for the fit
        anchor: Location the first component's mean was fixed at
    """

    means: NDArray[np.float64]
    sigmas: NDArray[np.float64]
    weights: NDArray[np.float64]
    responsibilities: NDArray[np.float64]
    log_likelihood: float
    n_iter: int
    converged: bool
    mode: str
    anchor: float

    @property
    def dominant(self) -> int:
        """Index of the component with the larger mixing weight."""
        return int(np.argmax(self.weights))


@runtime_checkable
class MixtureFitter(Protocol):
    """Anything that can fit a two-component mixture to a 1D sample."""

    def fit(self, values: NDArray[np.float64]) -> MixtureFit:
        ...


def estimate_mode(values: NDArray[np.float64], grid_size: int = 512) -> float:
    """
    Location of the highest density of a sample.

    Evaluates a Gaussian kernel density estimate (Scott bandwidth) on an
    evenly spaced grid between the sample's minimum and maximum and returns
    the grid point with the largest density.

    Raises:
        FitFailure: If the density cannot be estimated (e.g. constant sample)
    """
    x = np.asarray(values, dtype=np.float64)
    x = x[np.isfinite(x)]
    if len(x) < 2 or np.ptp(x) == 0:
        raise FitFailure("No_success: cannot locate the mode of a constant sample")

    try:
        kde = gaussian_kde(x)
    except np.linalg.LinAlgError as e:
        raise FitFailure(f"No_success: density estimate failed ({e})")

    grid = np.linspace(x.min(), x.max(), grid_size)
    return float(grid[np.argmax(kde(grid))])


class TwoComponentEM:
    """
    Constrained expectation-maximization for a two-component normal mixture.

    Args:
        mode: "unimodal" (shared mean) or "bimodal" (second mean free)
        max_iter: Maximum EM iterations before the fit counts as failed
        tol: Relative log-likelihood change that counts as converged
        min_observations: Minimum number of finite values to attempt a fit
        min_component_size: Minimum effective size (sum of responsibilities)
            of either component; smaller means the component is empty
        grid_size: Grid resolution for locating the mode

    Examples:
        >>> fitter = TwoComponentEM(mode="unimodal")
        >>> fit = fitter.fit(values)
        >>> fit.means[fit.dominant], fit.sigmas[fit.dominant]
    """

    def __init__(
        self,
        mode: MixtureMode | str = MixtureMode.UNIMODAL,
        max_iter: int = 1000,
        tol: float = 1e-8,
        min_observations: int = 10,
        min_component_size: float = 2.0,
        grid_size: int = 512,
    ):
        self.mode = MixtureMode.resolve(mode)
        self.max_iter = max_iter
        self.tol = tol
        self.min_observations = min_observations
        self.min_component_size = min_component_size
        self.grid_size = grid_size

    @classmethod
    def from_config(cls, config) -> TwoComponentEM:
        """Build from a :class:`~proteorepro.config.MixtureConfig`."""
        return cls(
            mode=config.mode,
            max_iter=config.max_iter,
            tol=config.tol,
            min_observations=config.min_observations,
            min_component_size=config.min_component_size,
            grid_size=config.grid_size,
        )

    def _initial_parameters(
        self, x: NDArray[np.float64], anchor: float
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        sd = float(np.std(x))
        robust_sd = _MAD_TO_SD * float(np.median(np.abs(x - anchor)))
        if robust_sd <= 0:
            robust_sd = 0.5 * sd

        in_core = np.abs(x - anchor) <= 3 * robust_sd
        core_weight = float(np.clip(np.mean(in_core), 0.5, 0.95))

        if self.mode == MixtureMode.UNIMODAL:
            means = np.array([anchor, anchor])
            sigmas = np.array([robust_sd, max(2 * robust_sd, sd)])
        else:
            tail = x[~in_core]
            if len(tail) >= 2:
                second_mean = float(np.mean(tail))
                second_sd = max(float(np.std(tail)), robust_sd)
            else:
                direction = np.sign(np.mean(x) - anchor) or 1.0
                second_mean = anchor + 3 * robust_sd * direction
                second_sd = sd
            means = np.array([anchor, second_mean])
            sigmas = np.array([robust_sd, second_sd])

        weights = np.array([core_weight, 1.0 - core_weight])
        return means, sigmas, weights

    @staticmethod
    def _e_step(
        x: NDArray[np.float64],
        means: NDArray[np.float64],
        sigmas: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> tuple[NDArray[np.float64], float]:
        log_dens = norm.logpdf(x[:, None], means[None, :], sigmas[None, :]) + np.log(weights)[None, :]
        row_ll = logsumexp(log_dens, axis=1)
        resp = np.exp(log_dens - row_ll[:, None])
        return resp, float(np.sum(row_ll))

    def fit(self, values: NDArray[np.float64]) -> MixtureFit:
        """
        Fit the mixture to the finite entries of ``values``.

        Raises:
            FitFailure: Too few values, constant sample, an empty or
                zero-variance component, or no convergence within max_iter
        """
        x = np.asarray(values, dtype=np.float64)
        x = x[np.isfinite(x)]
        n = len(x)

        if n < self.min_observations:
            raise FitFailure(
                f"No_success: {n} observed values, need at least {self.min_observations}"
            )

        anchor = estimate_mode(x, self.grid_size)
        means, sigmas, weights = self._initial_parameters(x, anchor)
        sigma_floor = 1e-6 * float(np.std(x))

        log_likelihood = -np.inf
        converged = False
        n_iter = 0

        for n_iter in range(1, self.max_iter + 1):
            resp, new_log_likelihood = self._e_step(x, means, sigmas, weights)

            effective = resp.sum(axis=0)
            if np.any(effective < self.min_component_size):
                raise FitFailure(
                    f"No_success: component {int(np.argmin(effective))} is empty "
                    f"(effective size {effective.min():.2f}) after {n_iter} iterations"
                )

            weights = effective / n
            if self.mode == MixtureMode.BIMODAL:
                means = means.copy()
                means[1] = float(resp[:, 1] @ x / effective[1])
            sigmas = np.sqrt(np.sum(resp * (x[:, None] - means[None, :]) ** 2, axis=0) / effective)

            if np.any(sigmas < sigma_floor):
                raise FitFailure(
                    f"No_success: component {int(np.argmin(sigmas))} collapsed to zero variance"
                )

            change = abs(new_log_likelihood - log_likelihood)
            if np.isfinite(log_likelihood) and change <= self.tol * (1.0 + abs(log_likelihood)):
                converged = True
                log_likelihood = new_log_likelihood
                break
            log_likelihood = new_log_likelihood

        if not converged:
            raise FitFailure(f"No_success: EM did not converge within {self.max_iter} iterations")

        resp, log_likelihood = self._e_step(x, means, sigmas, weights)

        logger.debug(
            f"Two-component fit ({self.mode.value}): means={means.round(3).tolist()}, "
            f"sigmas={sigmas.round(3).tolist()}, weights={weights.round(3).tolist()}, "
            f"iterations={n_iter}"
        )

        return MixtureFit(
            means=means,
            sigmas=sigmas,
            weights=weights,
            responsibilities=resp,
            log_likelihood=log_likelihood,
            n_iter=n_iter,
            converged=True,
            mode=self.mode.value,
            anchor=anchor,
        )


@dataclass(frozen=True)
class TwoComponentResult:
    """Per-sample outcome of two-component normalization.

    Attributes:
        normalized: ``(values - location) / scale``, same length as the input
        assignment: Component index per input value, -1 where missing
        selected_component: Component whose parameters were used
        location: Mean of the selected component
        scale: Standard deviation of the selected component
        fit: Underlying mixture fit
    """

    normalized: NDArray[np.float64]
    assignment: NDArray[np.int_]
    selected_component: int
    location: float
    scale: float
    fit: MixtureFit

    @property
    def selected_fraction(self) -> float:
        """Fraction of observed values assigned to the selected component."""
        observed = self.assignment >= 0
        if not np.any(observed):
            return 0.0
        return float(np.mean(self.assignment[observed] == self.selected_component))


def fit_two_component(
    values: NDArray[np.float64],
    mode: MixtureMode | str = MixtureMode.UNIMODAL,
    fitter: MixtureFitter | None = None,
    column: str | None = None,
) -> TwoComponentResult:
    """
    Fit a two-component mixture to one sample and normalize it.

    The selected component is the one with the larger mixing weight; values
    are re-centered on its mean and scaled by its standard deviation.
    Missing values stay missing.

    Args:
        values: One sample column (NaN for missing)
        mode: Mean constraint used when no fitter is given
        fitter: Custom MixtureFitter (e.g. a deterministic test stub)
        column: Sample name, attached to any failure

    Raises:
        FitFailure: The fit failed; ``column`` names the sample
        InternalConsistencyError: The fitter returned misaligned output

    Examples:
        >>> result = fit_two_component(matrix.column('S1'), mode="unimodal")
        >>> result.selected_fraction
        0.9
    """
    x = np.asarray(values, dtype=np.float64)
    finite = np.isfinite(x)

    if fitter is None:
        fitter = TwoComponentEM(mode=mode)

    try:
        fit = fitter.fit(x)
    except FitFailure as e:
        if e.column is None:
            e.column = column
        raise

    if not fit.converged:
        raise FitFailure("No_success: mixture fit did not converge", column=column)

    if fit.responsibilities.shape != (int(finite.sum()), 2):
        raise InternalConsistencyError(
            f"Mixture fitter returned responsibilities of shape {fit.responsibilities.shape} "
            f"for {int(finite.sum())} observed values",
            column=column,
        )

    selected = fit.dominant
    location = float(fit.means[selected])
    scale = float(fit.sigmas[selected])
    if not scale > 0:
        raise FitFailure("No_success: selected component has zero variance", column=column)

    assignment = np.full(len(x), -1, dtype=int)
    assignment[finite] = np.argmax(fit.responsibilities, axis=1)

    return TwoComponentResult(
        normalized=(x - location) / scale,
        assignment=assignment,
        selected_component=selected,
        location=location,
        scale=scale,
        fit=fit,
    )
