from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import arviz as az

from .config import PPC_NUM_SAMPLES


def plot_ppc(idata: az.InferenceData, response: str, path, title: str = None,
             num_pp_samples: int = PPC_NUM_SAMPLES, random_seed: int = 123) -> Path:
    """
    Posterior predictive check: observed outcome distribution against
    datasets simulated from the fitted model.
    """
    if "posterior_predictive" not in idata.groups():
        raise ValueError("InferenceData has no posterior_predictive group to plot.")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    n_total = idata.posterior_predictive.sizes["chain"] * idata.posterior_predictive.sizes["draw"]
    ax = az.plot_ppc(
        idata,
        var_names=[response],
        num_pp_samples=min(num_pp_samples, n_total),
        random_seed=random_seed,
    )
    ax = ax.ravel()[0] if hasattr(ax, "ravel") else ax
    fig = ax.figure
    if title:
        ax.set_title(title)
    fig.tight_layout()
    print(f"Saving posterior predictive check to: {path}")
    fig.savefig(path, dpi=150)
    plt.close(fig)
    return path
