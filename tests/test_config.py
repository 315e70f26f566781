"""
Tests for configuration, I/O and logging utilities.
"""

import numpy as np
import pandas as pd
import pytest
import yaml

from cytoexplore.utils.config import (
    ClusteringConfig,
    EmbeddingSettings,
    ExploreConfig,
    ManifestConfig,
    SyntheticConfig,
    create_default_config,
    load_config,
)
from cytoexplore.utils.io import ensure_dir, load_numpy, load_table, save_numpy, save_table
from cytoexplore.utils.logging import get_logger, level_from_flags, logger, setup_logging


# =============================================================================
# Tests for Configuration
# =============================================================================

class TestConfigDefaults:
    """Tests for default configuration values."""

    def test_manifest_defaults(self):
        config = ManifestConfig()

        assert config.pattern == "*.fcs"
        assert config.delimiter == "_"
        assert config.condition_index == -2
        assert config.join_how == "inner"
        assert config.results_path is None

    def test_synthetic_defaults(self):
        config = SyntheticConfig()

        assert config.n_events == 20000
        assert config.cofactor == 150.0

    def test_clustering_defaults(self):
        config = ClusteringConfig()

        assert config.kmeans_n_clusters == 6
        assert config.som_grid == [10, 10]
        assert config.som_n_metaclusters == 6
        assert config.gmm_covariance_type == "full"
        assert config.random_state == 42

    def test_embedding_defaults(self):
        config = EmbeddingSettings()

        assert config.n_components == 2
        assert config.max_events == 5000

    def test_master_config(self):
        config = ExploreConfig()

        assert isinstance(config.manifest, ManifestConfig)
        assert isinstance(config.clustering, ClusteringConfig)
        assert repr(config) == "ExploreConfig(experiment_name='default')"


class TestConfigSerialisation:
    """Tests for saving and loading configuration."""

    def test_save_and_load_round_trip(self, tmp_path):
        config = ExploreConfig(experiment_name="round_trip")
        config.clustering.kmeans_n_clusters = 8
        config.clustering.som_grid = [5, 7]
        config.manifest.results_path = "results.csv"

        path = tmp_path / "configs" / "config.yaml"
        config.save(path)
        loaded = load_config(path)

        assert loaded.experiment_name == "round_trip"
        assert loaded.clustering.kmeans_n_clusters == 8
        assert loaded.clustering.som_grid == [5, 7]
        assert loaded.manifest.results_path == "results.csv"

    def test_partial_yaml_filled_with_defaults(self, tmp_path):
        path = tmp_path / "partial.yaml"
        path.write_text(yaml.safe_dump({"clustering": {"gmm_n_components": 4}}))

        config = load_config(path)

        assert config.clustering.gmm_n_components == 4
        assert config.clustering.kmeans_n_clusters == 6
        assert config.synthetic.n_events == 20000

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = ExploreConfig.from_yaml(path)

        assert config.experiment_name == "default"

    def test_unknown_key_raises(self):
        with pytest.raises(Exception):
            ExploreConfig.from_dict({"clustering": {"n_trees": 3}})

    def test_to_dict(self):
        d = ExploreConfig().to_dict()

        assert d["clustering"]["som_grid"] == [10, 10]
        assert d["manifest"]["pattern"] == "*.fcs"

    def test_create_default_config(self, tmp_path):
        path = tmp_path / "default.yaml"
        config = create_default_config(path)

        assert path.exists()
        assert load_config(path).to_dict() == config.to_dict()


# =============================================================================
# Tests for I/O
# =============================================================================

class TestTableIO:
    """Tests for table persistence."""

    def test_csv_round_trip(self, tmp_path):
        df = pd.DataFrame({"a": [1, 2], "b": ["x", "y"]})
        path = save_table(df, tmp_path / "nested" / "table.csv")

        pd.testing.assert_frame_equal(load_table(path), df)

    def test_tsv_uses_tabs(self, tmp_path):
        df = pd.DataFrame({"a": [1], "b": [2]})
        path = save_table(df, tmp_path / "table.tsv")

        assert path.read_text().splitlines()[0] == "a\tb"
        pd.testing.assert_frame_equal(load_table(path), df)

    def test_index_written(self, tmp_path):
        df = pd.DataFrame({"a": [1]}, index=pd.Index(["r1"], name="row"))
        path = save_table(df, tmp_path / "table.csv", index=True)

        assert path.read_text().splitlines()[0] == "row,a"

    def test_missing_table_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Table not found"):
            load_table(tmp_path / "missing.csv")


class TestArrayIO:
    """Tests for array persistence."""

    def test_compressed_round_trip(self, tmp_path):
        array = np.arange(12).reshape(3, 4)
        save_numpy(array, tmp_path / "array.npz")

        np.testing.assert_array_equal(load_numpy(tmp_path / "array.npz"), array)

    def test_uncompressed_round_trip(self, tmp_path):
        array = np.linspace(0, 1, 5)
        save_numpy(array, tmp_path / "array.npy", compress=False)

        np.testing.assert_array_equal(load_numpy(tmp_path / "array.npy"), array)

    def test_ensure_dir(self, tmp_path):
        path = ensure_dir(tmp_path / "a" / "b")

        assert path.is_dir()
        assert ensure_dir(path) == path


# =============================================================================
# Tests for Logging
# =============================================================================

class TestLogging:
    """Tests for loguru configuration."""

    def test_log_file_written(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        setup_logging(level="DEBUG", log_file=log_file)

        logger.info("manifest built")
        setup_logging(level="INFO")

        text = log_file.read_text()
        assert "manifest built" in text
        assert "<green>" not in text

    def test_get_logger(self):
        log = get_logger("cytoexplore.test")
        log.info("bound logger works")

    def test_log_file_records_debug_when_console_is_quiet(self, tmp_path):
        log_file = tmp_path / "run.log"
        setup_logging(level="WARNING", log_file=log_file)

        logger.debug("codebook trained")
        setup_logging(level="INFO")

        assert "codebook trained" in log_file.read_text()

    def test_level_names_case_insensitive(self):
        setup_logging(level="debug")
        setup_logging(level="INFO")

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(level="LOUD")

    @pytest.mark.parametrize("verbose,quiet,expected", [
        (False, False, "INFO"),
        (True, False, "DEBUG"),
        (False, True, "WARNING"),
        (True, True, "DEBUG"),
    ])
    def test_level_from_flags(self, verbose, quiet, expected):
        assert level_from_flags(verbose, quiet) == expected
