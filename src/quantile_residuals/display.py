"""Formatted ASCII table display for residual results.

Mirrors the statsmodels summary style: a header panel describing how
the residuals were produced (method, random-effect provenance,
replicates) and a panel of distribution checks on the normal scale,
followed by notes when something needs the reader's attention.
"""

from __future__ import annotations

import textwrap

import numpy as np

from ._results import ResidualResult
from .diagnostics import DiagnosticData


def _fmt(val: float | None, digits: int = 4) -> str:
    """Format a float for display; ``None`` and ``nan`` become ``'N/A'``."""
    if val is None or val != val:  # nan check
        return "N/A"
    if val != 0 and abs(val) < 10 ** (-digits):
        return f"{val:.2e}"
    return f"{val:.{digits}f}"


def _wrap(text: str, width: int = 80, indent: int = 2) -> str:
    """Word-wrap *text* to *width*, indenting continuation lines."""
    return textwrap.fill(
        text,
        width=width,
        initial_indent="",
        subsequent_indent=" " * indent,
    )


def print_residual_summary(
    result: ResidualResult,
    *,
    title: str = "Randomized Quantile Residuals",
) -> None:
    """Print a summary of *result* in a formatted ASCII table.

    Args:
        result: Residuals returned by
            :func:`~quantile_residuals.compute_residuals`.
        title: Title for the output table.
    """
    W = 80
    diag = DiagnosticData(result=result)
    z = result.finite("normal")
    ks = diag.ks_test("uniform")
    n_nonfinite = int(result.nonfinite.sum())

    print("=" * W)
    for line in textwrap.wrap(title, width=W - 2):
        print(f"{line:^{W}}")
    print("=" * W)

    draw = result.draw
    provenance = draw.provenance
    if draw.mcmc_index is not None:
        provenance = f"{provenance} [{draw.mcmc_index}]"
    replicates = str(result.batch.n_replicates) if result.batch is not None else "-"
    rows = [
        ("Method:", result.method, "No. Observations:", str(result.n_obs)),
        ("Random effects:", provenance, "No. Random Effects:", str(draw.n_random)),
        (
            "Randomized:",
            "Yes" if result.randomized else "No",
            "Replicates:",
            replicates,
        ),
    ]
    for ll, lv, rl, rv in rows:
        print(f"{ll:<16}{lv:<24}{rl:>29} {rv:>10}")
    print("-" * W)

    print("Distribution checks (normal scale)")
    print("-" * W)
    mean = float(np.mean(z)) if z.size else None
    var = float(np.var(z, ddof=1)) if z.size > 1 else None
    checks = [
        ("Mean (target 0):", _fmt(mean)),
        ("Variance (target 1):", _fmt(var)),
        ("KS statistic:", _fmt(ks["statistic"])),
        ("KS p-value:", _fmt(ks["p_value"])),
        ("Non-finite:", str(n_nonfinite)),
    ]
    for label, value in checks:
        print(f"{label:<30}{value:>12}")
    print("=" * W)

    notes: list[str] = []
    if n_nonfinite:
        notes.append(
            f"{n_nonfinite} residual(s) saturated to ±inf on the normal "
            "scale and were excluded from the checks above."
        )
    if result.method == "simulation" and result.batch is not None:
        if result.batch.n_replicates < 250:
            notes.append(
                f"Only {result.batch.n_replicates} replicates were simulated; "
                "tail residuals are bounded by 1/(N+1).  N >= 250 is "
                "recommended."
            )
    integer_valued = bool(np.allclose(result.observed, np.round(result.observed)))
    if not result.randomized and integer_valued:
        notes.append(
            "Residuals were not randomized; discrete responses will look "
            "discretized and non-uniform."
        )
    if draw.provenance == "empirical_bayes" and draw.n_random > 0:
        notes.append(
            "Residuals condition on the empirical-Bayes mode, which is "
            "shrunk toward zero; expect residual variance below 1."
        )
    if notes:
        print("Notes")
        print("-" * W)
        for note in notes:
            print(_wrap(f"[!] {note}", width=W))
        print("=" * W)
