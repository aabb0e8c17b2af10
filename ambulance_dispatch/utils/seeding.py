"""
Initial fleet and facility data for a session.
"""
from typing import List, Optional, Union
from pathlib import Path

import numpy as np
import pandas as pd

from ambulance_dispatch.simulator.ambulance import Ambulance, Facility
from ambulance_dispatch.utils.geo_utils import Coordinate

# LifeLink Central, Bengaluru
HOSPITAL_LOCATION = Coordinate(12.9716, 77.5946)

DEFAULT_FACILITIES = [
    Facility("LifeLink Central Hospital", HOSPITAL_LOCATION),
    Facility("St. Mary's Medical Center", Coordinate(13.0108, 77.5550)),
    Facility("City Trauma Center", Coordinate(12.9279, 77.6271)),
    Facility("East Side General", Coordinate(12.9800, 77.7000)),
    Facility("West Gate Health", Coordinate(12.9600, 77.5300)),
    Facility("Apollo Specialty Jayanagar", Coordinate(12.9400, 77.5800)),
    Facility("Jayadeva Institute of Cardiology", Coordinate(12.9204, 77.5930)),
    Facility("Fortis Hospital Bannerghatta", Coordinate(12.8950, 77.5980)),
    Facility("Narayana Health City", Coordinate(12.8123, 77.6945)),
    Facility("Sakra World Hospital", Coordinate(12.9262, 77.6787)),
    Facility("Aster RV Hospital", Coordinate(12.9134, 77.5824)),
    Facility("Rainbow Children's Hospital", Coordinate(12.8980, 77.6150)),
    Facility("Manipal Hospital Sarjapur", Coordinate(12.9155, 77.6655)),
    Facility("St. John's Medical College", Coordinate(12.9325, 77.6225)),
]


def generate_ambulances(
    num_ambulances: int = 10,
    center: Coordinate = HOSPITAL_LOCATION,
    spread: float = 0.12,
    seed: Optional[int] = None,
) -> List[Ambulance]:
    """
    Scatter ``num_ambulances`` AVAILABLE units uniformly within ±spread/2
    degrees of ``center``.
    """
    rng = np.random.default_rng(seed)
    offsets = (rng.random((num_ambulances, 2)) - 0.5) * spread
    phones = rng.integers(6_000_000_000, 9_999_999_999, size=num_ambulances)
    return [
        Ambulance(
            amb_id=f"AMB-{i + 1:02d}",
            name=f"Ambulance {i + 1}",
            phone=f"+91 {phones[i]}",
            location=Coordinate(center.lat + float(offsets[i, 0]), center.lng + float(offsets[i, 1])),
        )
        for i in range(num_ambulances)
    ]


def random_locations(n: int, center: Coordinate = HOSPITAL_LOCATION, spread: float = 0.12,
                     seed: Optional[int] = None) -> List[Coordinate]:
    """Random request sites around ``center`` (used by the demo runner)."""
    rng = np.random.default_rng(seed)
    offsets = (rng.random((n, 2)) - 0.5) * spread
    return [Coordinate(center.lat + float(dlat), center.lng + float(dlng)) for dlat, dlng in offsets]


def load_facilities(csv_path: Union[str, Path]) -> List[Facility]:
    """Read facilities from a CSV with ``name``, ``lat`` and ``lng`` columns."""
    df = pd.read_csv(csv_path)
    missing = {"name", "lat", "lng"} - set(df.columns)
    if missing:
        raise ValueError(f"CSV file must contain 'name', 'lat' and 'lng' columns. Missing: {sorted(missing)}")
    df = df.dropna(subset=["lat", "lng"])
    return [Facility(str(row.name), Coordinate(float(row.lat), float(row.lng))) for row in df.itertuples(index=False)]
