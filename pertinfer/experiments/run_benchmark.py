import argparse
from pathlib import Path

import joblib
import numpy as np
import pandas as pd
import yaml

from pertinfer.algorithms import classifier, nempi
from pertinfer.algorithms.propagation import propagate as propagate_assignment
from pertinfer.metrics.bootstrap import bootstrap_edge_stability
from pertinfer.metrics.metrics import (
    assignment_fit,
    directed_precision_recall_f1,
    edge_differences,
    precision_recall_f1,
    shd,
)
from pertinfer.utils.errors import PertinferError
from pertinfer.utils.loaders import simulate_dataset
from pertinfer.utils.logging_utils import setup_logging
from pertinfer.utils.provenance import save_inference_artifacts, save_run_metadata

RESULTS_DIR = Path.cwd() / "results"
SIMULATION_KEYS = {
    "n_pgenes", "egenes_per_pgene", "n_samples", "edge_prob", "effect",
    "noise_sd", "unlabeled_fraction", "seed",
}


def _dataset_entries(cfg: dict):
    for i, ds_cfg in enumerate(cfg.get("datasets", [])):
        if not isinstance(ds_cfg, dict):
            raise ValueError(f"Invalid dataset entry: {ds_cfg}")
        ds_cfg = dict(ds_cfg)
        name = ds_cfg.pop("name", f"sim{i}")
        unknown = set(ds_cfg) - SIMULATION_KEYS
        if unknown:
            raise ValueError(f"Unknown simulation options for {name}: {sorted(unknown)}")
        yield name, ds_cfg


def run(
    config_path: str,
    output_dir: str | Path | None = None,
    parallel_jobs: int | None = None,
) -> pd.DataFrame:
    """Run every configured method on every simulated dataset.

    Writes per-run logs, assignment tables and (for the network engine)
    network artifacts, and returns / saves ``summary_metrics.csv``.
    """
    with open(config_path) as f:
        cfg = yaml.safe_load(f) or {}

    base_dir = Path(output_dir) if output_dir is not None else RESULTS_DIR
    outputs_dir = base_dir / "outputs"
    logs_dir = base_dir / "logs"
    outputs_dir.mkdir(parents=True, exist_ok=True)
    logs_dir.mkdir(parents=True, exist_ok=True)
    logger = setup_logging(logs_dir / "benchmark.log")

    bootstrap = int(cfg.get("bootstrap_runs", 0))
    record_stability = bool(cfg.get("record_edge_stability", False))
    propagate = bool(cfg.get("propagate", True))
    parallel_jobs = int(parallel_jobs if parallel_jobs is not None else cfg.get("parallel_jobs", 1))

    datasets = [(name, params, simulate_dataset(**params)) for name, params in _dataset_entries(cfg)]
    methods = [(name, dict(params or {})) for name, params in cfg.get("methods", {}).items()]
    logger.info("Benchmark start: datasets=%d methods=%d", len(datasets), len(methods))

    def process_pair(alias, ds_params, sim, method, params):
        data = sim.data
        p_genes = list(sim.network.nodes)
        row = {"dataset": alias, "method": method, "error": ""}
        try:
            if method == "nempi":
                _, meta = nempi.run(data, p_genes=p_genes, config=params)
                gamma, omega = meta["assignment"], meta["propagation"]
                learned = meta["network"]
                row.update(precision_recall_f1(learned, sim.network))
                row.update(directed_precision_recall_f1(learned, sim.network))
                row["shd"] = shd(learned, sim.network)
                row["converged"] = meta["converged"]
                row["n_cycles"] = meta["n_cycles"]
                extra, missing, rev = edge_differences(learned, sim.network)
                with open(logs_dir / f"{alias}_{method}_diff.txt", "w") as df:
                    for label, edges in (("extra", extra), ("missing", missing), ("reversed", rev)):
                        for u, v in sorted(edges):
                            df.write(f"{label} {u}->{v}\n")
                save_inference_artifacts(outputs_dir, f"{alias}_{method}", meta)
            else:
                gamma, meta = classifier.run(data, method=method, p_genes=p_genes, **params)
                omega = propagate_assignment(sim.network, gamma) if propagate else gamma
            gamma.to_csv(outputs_dir / f"{alias}_{method}_gamma.csv", float_format="%.10g")
            row["gamma_auc"] = assignment_fit(gamma, sim.gamma).auc
            row["omega_auc"] = assignment_fit(omega, sim.omega).auc
            row["runtime_s"] = meta["runtime_s"]
        except (PertinferError, ValueError) as e:
            logger.error("Run failed: dataset=%s method=%s error=%s", alias, method, e)
            row["error"] = str(e)

        if method == "nempi" and record_stability and bootstrap > 0 and not row["error"]:
            freqs = bootstrap_edge_stability(
                lambda d: nempi.run(d, p_genes=p_genes, config=params),
                data,
                b=bootstrap,
                seed=0,
                n_jobs=1,
            )
            pd.DataFrame(
                [{"source": s, "target": t, "frequency": f} for (s, t), f in freqs.items()],
                columns=["source", "target", "frequency"],
            ).to_csv(logs_dir / f"{alias}_{method}_stability.csv", index=False)

        save_run_metadata(
            logs_dir / f"{alias}_{method}_metadata.json",
            alias, ds_params, method, params, random_seed=ds_params.get("seed"),
        )
        with open(logs_dir / f"{alias}_{method}.log", "w") as f:
            if row["error"]:
                f.write(f"error: {row['error']}\n")
            else:
                f.write(
                    f"gamma_auc={row['gamma_auc']:.3f}, omega_auc={row['omega_auc']:.3f}, "
                    f"runtime_s={row['runtime_s']:.2f}\n"
                )
        return row

    tasks = [
        joblib.delayed(process_pair)(alias, ds_params, sim, method, params)
        for alias, ds_params, sim in datasets
        for method, params in methods
    ]
    rows = joblib.Parallel(n_jobs=parallel_jobs, prefer="threads")(tasks)

    summary = pd.DataFrame(rows)
    for col in ("gamma_auc", "omega_auc", "runtime_s"):
        if col not in summary:
            summary[col] = np.nan
    summary.to_csv(base_dir / "summary_metrics.csv", index=False)
    logger.info("Benchmark end: rows=%d failures=%d", len(summary), int((summary["error"] != "").sum()))
    return summary


def main():
    parser = argparse.ArgumentParser(description="Benchmark perturbation inference on simulated screens")
    parser.add_argument(
        "--config", default=str(Path(__file__).with_name("config.yaml"))
    )
    parser.add_argument("--out-dir", default=None)
    parser.add_argument("--parallel-jobs", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()
    if args.verbose:
        setup_logging(None, to_stdout=True)
    run(args.config, args.out_dir, parallel_jobs=args.parallel_jobs)


if __name__ == "__main__":
    main()
