"""
Tests for the command line scripts.
"""

import json

import numpy as np
import pandas as pd
import pytest
import yaml

from cytoexplore.analysis.embedding import UMAP_AVAILABLE
from cytoexplore.data.manifest import build_manifest, create_example_tree, simulate_results
from cytoexplore.utils.logging import setup_logging
from scripts.build_manifest import main as manifest_main
from scripts.cluster_events import main as cluster_main


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def raw_dir(tmp_path):
    root = tmp_path / "raw"
    create_example_tree(root, tissues=("blood", "spleen"), subjects=("s01", "s02"))
    return root


@pytest.fixture
def results_csv(raw_dir, tmp_path):
    results = simulate_results(build_manifest(raw_dir))
    path = tmp_path / "results.csv"
    results.to_csv(path, index=False)
    return path


@pytest.fixture
def small_config(tmp_path):
    """Config with a small SOM so the CLI runs quickly."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "clustering": {
            "som_grid": [4, 4],
            "som_n_iterations": 500,
            "som_n_metaclusters": 4,
        },
        "embedding": {"max_events": 200},
    }))
    return path


# =============================================================================
# Tests for build_manifest
# =============================================================================

class TestBuildManifestScript:
    """Tests for scripts/build_manifest.py."""

    def test_manifest_only(self, raw_dir, tmp_path):
        output = tmp_path / "out"
        manifest_main(["--root", str(raw_dir), "--output", str(output)])

        manifest = pd.read_csv(output / "manifest.csv")
        assert len(manifest) == 8
        assert not (output / "manifest_results.csv").exists()

    def test_with_results(self, raw_dir, results_csv, tmp_path):
        output = tmp_path / "out"
        manifest_main([
            "--root", str(raw_dir),
            "--results", str(results_csv),
            "--output", str(output),
        ])

        joined = pd.read_csv(output / "manifest_results.csv")
        assert len(joined) == 8
        assert {"condition", "tissue", "biomarker"} <= set(joined.columns)
        assert (output / "biomarker_summary.csv").exists()
        assert (output / "biomarker_by_group.png").exists()

    def test_pattern_without_matches_exits(self, raw_dir, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            manifest_main([
                "--root", str(raw_dir),
                "--pattern", "*.lmd",
                "--output", str(tmp_path / "out"),
            ])

        assert exc_info.value.code == 1

    def test_missing_root_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            manifest_main(["--root", str(tmp_path / "nowhere"), "--output", str(tmp_path / "out")])

        assert exc_info.value.code == 1

    def test_missing_config_exits(self, raw_dir, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            manifest_main([
                "--root", str(raw_dir),
                "--config", str(tmp_path / "missing.yaml"),
                "--output", str(tmp_path / "out"),
            ])

        assert exc_info.value.code == 1

    def test_output_and_log_from_config(self, raw_dir, tmp_path):
        """Test that the output directory defaults to <output_dir>/<experiment_name>."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump({
            "output_dir": str(tmp_path / "runs"),
            "experiment_name": "pilot",
        }))

        manifest_main(["--root", str(raw_dir), "--config", str(config_path)])
        setup_logging(level="INFO")

        run_dir = tmp_path / "runs" / "pilot"
        assert (run_dir / "manifest.csv").exists()
        assert "Found 8 files" in (run_dir / "pilot.log").read_text()

    def test_missing_results_exits(self, raw_dir, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            manifest_main([
                "--root", str(raw_dir),
                "--results", str(tmp_path / "missing.csv"),
                "--output", str(tmp_path / "out"),
            ])

        assert exc_info.value.code == 1

    def test_invalid_results_exits(self, raw_dir, tmp_path):
        bad = tmp_path / "bad.csv"
        pd.DataFrame({"sample": ["x"], "score": [1.0]}).to_csv(bad, index=False)

        with pytest.raises(SystemExit) as exc_info:
            manifest_main([
                "--root", str(raw_dir),
                "--results", str(bad),
                "--output", str(tmp_path / "out"),
            ])

        assert exc_info.value.code == 1


# =============================================================================
# Tests for cluster_events
# =============================================================================

class TestClusterEventsScript:
    """Tests for scripts/cluster_events.py."""

    def test_synthetic_run(self, small_config, tmp_path):
        output = tmp_path / "clustering"
        cluster_main([
            "--config", str(small_config),
            "--n-events", "400",
            "--methods", "kmeans", "som", "gmm",
            "--output", str(output),
        ])

        with open(output / "metrics.json") as f:
            metrics = json.load(f)

        assert set(metrics) == {"kmeans", "som", "gmm"}
        assert 0.0 <= metrics["kmeans"]["purity"] <= 1.0
        assert "quantization_error" in metrics["som"]
        assert isinstance(metrics["som"]["topographic_error"], float)
        assert "bic" in metrics["gmm"]

        for name in ("kmeans", "som", "gmm"):
            assert (output / f"{name}_labels.npz").exists()
            assert (output / f"{name}_contingency.csv").exists()
            assert (output / "figures" / f"{name}_heatmap.png").exists()

        assert (output / "figures" / "som_umatrix.png").exists()
        assert (output / "config.yaml").exists()

    def test_input_file_with_cofactor(self, tmp_path):
        """Test clustering a user CSV without population labels."""
        path = tmp_path / "events.csv"
        pd.DataFrame({
            "CD3": [10.0, 12.0, 900.0, 950.0, 11.0, 920.0] * 10,
            "CD19": [800.0, 850.0, 5.0, 8.0, 820.0, 6.0] * 10,
        }).to_csv(path, index=False)
        output = tmp_path / "out"

        cluster_main([
            "--input", str(path),
            "--cofactor", "150",
            "--methods", "kmeans",
            "--output", str(output),
        ])

        with open(output / "metrics.json") as f:
            metrics = json.load(f)

        assert "ari" not in metrics["kmeans"]
        assert not (output / "kmeans_contingency.csv").exists()

    def test_missing_input_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            cluster_main(["--input", str(tmp_path / "missing.csv"), "--output", str(tmp_path / "out")])

        assert exc_info.value.code == 1

    def test_missing_config_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            cluster_main(["--config", str(tmp_path / "missing.yaml"), "--output", str(tmp_path / "out")])

        assert exc_info.value.code == 1

    def test_fewer_events_than_clusters_exits(self, tmp_path):
        path = tmp_path / "events.csv"
        pd.DataFrame({"CD3": [1.0, 2.0, 3.0], "CD19": [3.0, 2.0, 1.0]}).to_csv(path, index=False)

        with pytest.raises(SystemExit) as exc_info:
            cluster_main(["--input", str(path), "--methods", "kmeans", "--output", str(tmp_path / "out")])

        assert exc_info.value.code == 1

    def test_small_input_allowed_for_som(self, tmp_path):
        """Test that the event count check only applies to k-means and GMM."""
        path = tmp_path / "events.csv"
        pd.DataFrame({"CD3": [1.0, 2.0, 3.0, 9.0], "CD19": [3.0, 2.0, 1.0, 0.5]}).to_csv(path, index=False)
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump({
            "clustering": {"som_grid": [2, 2], "som_n_iterations": 50, "som_n_metaclusters": 2},
        }))
        output = tmp_path / "out"

        cluster_main([
            "--input", str(path),
            "--config", str(config_path),
            "--methods", "som",
            "--output", str(output),
        ])

        assert (output / "som_labels.npz").exists()

    def test_unsupported_input_exits(self, tmp_path):
        path = tmp_path / "events.txt"
        path.write_text("CD3\n1.0\n")

        with pytest.raises(SystemExit) as exc_info:
            cluster_main(["--input", str(path), "--output", str(tmp_path / "out")])

        assert exc_info.value.code == 1

    def test_invalid_method_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            cluster_main(["--methods", "dbscan", "--output", str(tmp_path / "out")])

    @pytest.mark.skipif(not UMAP_AVAILABLE, reason="umap-learn not installed")
    def test_umap(self, small_config, tmp_path):
        output = tmp_path / "umap"
        cluster_main([
            "--config", str(small_config),
            "--n-events", "300",
            "--methods", "umap",
            "--output", str(output),
        ])

        assert (output / "umap_coords.npz").exists()
        assert (output / "figures" / "umap.png").exists()

    @pytest.mark.skipif(not UMAP_AVAILABLE, reason="umap-learn not installed")
    def test_umap_3d(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump({"embedding": {"n_components": 3, "max_events": 200}}))
        output = tmp_path / "umap3d"

        cluster_main([
            "--config", str(config_path),
            "--n-events", "300",
            "--methods", "umap",
            "--output", str(output),
        ])

        with np.load(output / "umap_coords.npz") as data:
            assert data["data"].shape == (200, 3)
