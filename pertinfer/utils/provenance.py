import json
import platform
import sys
from pathlib import Path
from typing import Any, Dict, Mapping

import networkx as nx
import numpy as np
import pandas as pd


def get_library_versions() -> Dict[str, str]:
    """Get versions of key libraries."""
    import scipy
    import sklearn

    return {
        "python": sys.version,
        "platform": platform.platform(),
        "pandas": pd.__version__,
        "numpy": np.__version__,
        "networkx": nx.__version__,
        "scipy": scipy.__version__,
        "scikit-learn": sklearn.__version__,
    }


def save_run_metadata(
    output_path: Path,
    dataset_name: str,
    dataset_params: Mapping[str, Any],
    method_name: str,
    method_params: Mapping[str, Any],
    random_seed: int | None = None,
) -> None:
    """Save metadata for a single dataset x method run."""
    metadata = {
        "dataset": {"name": dataset_name, "parameters": dict(dataset_params)},
        "method": {"name": method_name, "parameters": dict(method_params)},
        "environment": {
            "random_seed": random_seed,
            "libraries": get_library_versions(),
        },
    }
    with open(output_path, "w") as f:
        json.dump(metadata, f, indent=2, default=str)


def save_inference_artifacts(output_dir: Path, base_filename: str, meta: Mapping[str, Any]) -> None:
    """Write the learned network, attachment and assignments of one engine run."""
    output_dir.mkdir(parents=True, exist_ok=True)

    network = meta["network"]
    nodes = list(network.nodes)
    pd.DataFrame(network.adjacency(), index=nodes, columns=nodes).to_csv(
        output_dir / f"{base_filename}_adj.csv"
    )
    with open(output_dir / f"{base_filename}_edges.json", "w") as f:
        json.dump([{"source": u, "target": v} for u, v in network.edges], f, indent=2)

    meta["attachment"].to_csv(output_dir / f"{base_filename}_attachment.csv")
    meta["assignment"].to_csv(output_dir / f"{base_filename}_gamma.csv", float_format="%.10g")
    meta["propagation"].to_csv(output_dir / f"{base_filename}_omega.csv", float_format="%.10g")
    with open(output_dir / f"{base_filename}_trace.json", "w") as f:
        json.dump(
            {
                "score_trace": [float(s) for s in meta["score_trace"]],
                "gamma_deltas": [float(d) for d in meta["gamma_deltas"]],
                "converged": bool(meta["converged"]),
            },
            f,
            indent=2,
        )
