import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.lines import Line2D
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from ambulance_dispatch.simulator.ambulance import Facility
from ambulance_dispatch.simulator.dispatch import Dispatch


def plot_dispatch_trace(
    trail: pd.DataFrame,
    facilities: Sequence[Facility] = (),
    dispatches: Sequence[Dispatch] = (),
    save_path: Optional[Union[str, Path]] = None,
    figsize: Tuple[int, int] = (10, 10),
    title: str = "Ambulance Trails",
):
    """
    Plot the ambulance trails recorded by a DispatchTracker.

    Args:
        trail: DataFrame from ``DispatchTracker.to_frame()``
        facilities: Hospitals to mark on the map
        dispatches: Dispatches whose request sites should be marked
        save_path: Path to save the plot to (optional)
        figsize: Figure size as (width, height) in inches
        title: Plot title

    Returns:
        fig, ax: The figure and axis objects
    """
    required = {"dispatch_id", "lat", "lng", "status"}
    if not required.issubset(trail.columns):
        raise ValueError(f"Trail must contain {sorted(required)} columns. Found: {list(trail.columns)}")

    fig, ax = plt.subplots(figsize=figsize)

    # Pickup leg in red, hospital leg in orange
    for _, rows in trail.groupby("dispatch_id", sort=False):
        to_patient = rows[rows["status"] != "EN_ROUTE_TO_HOSPITAL"]
        to_hospital = rows[rows["status"] == "EN_ROUTE_TO_HOSPITAL"]
        ax.plot(to_patient["lng"], to_patient["lat"], color="#FF4136", linewidth=1.5, alpha=0.8)
        ax.plot(to_hospital["lng"], to_hospital["lat"], color="#FF851B", linewidth=1.5, alpha=0.8)

    if facilities:
        ax.scatter([f.location.lng for f in facilities], [f.location.lat for f in facilities],
                   marker="P", s=80, color="#0074D9", zorder=3)
    if dispatches:
        ax.scatter([d.location.lng for d in dispatches], [d.location.lat for d in dispatches],
                   marker="X", s=80, color="black", zorder=4)

    legend_elements = [
        Line2D([0], [0], color="#FF4136", label="To patient"),
        Line2D([0], [0], color="#FF851B", label="To hospital"),
        Line2D([0], [0], marker="P", color="w", markerfacecolor="#0074D9", markersize=10, label="Hospital"),
        Line2D([0], [0], marker="X", color="w", markerfacecolor="black", markersize=10, label="Request"),
    ]
    ax.legend(handles=legend_elements, loc="upper right")
    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    return fig, ax
