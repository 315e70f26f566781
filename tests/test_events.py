"""
Tests for event tables, synthetic data and cytometry transforms.
"""

import sys

import numpy as np
import pandas as pd
import pytest

from cytoexplore.data.events import (
    DEFAULT_MARKERS,
    LABEL_COLUMN,
    EventTable,
    Population,
    arcsinh_transform,
    compensate,
    default_populations,
    generate_synthetic_events,
    inverse_arcsinh_transform,
    load_events,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def events():
    """Small synthetic event table."""
    return generate_synthetic_events(n_events=1000, random_state=0)


@pytest.fixture
def linear_df():
    """Linear-scale intensities with a non-numeric column."""
    return pd.DataFrame({
        "FL1": [0.0, 150.0, 1500.0, -150.0],
        "FL2": [10.0, 20.0, 30.0, 40.0],
        "sample": ["a", "a", "b", "b"],
    })


@pytest.fixture
def spillover():
    """Two-channel spillover matrix."""
    return pd.DataFrame(
        [[1.0, 0.15], [0.05, 1.0]],
        index=["FL1", "FL2"],
        columns=["FL1", "FL2"],
    )


# =============================================================================
# Tests for Populations
# =============================================================================

class TestPopulation:
    """Tests for the Population dataclass."""

    def test_mean_vector_defaults_to_negative(self):
        population = Population(name="T", fraction=1.0, means={"CD3": 3.0})
        means = population.mean_vector(["CD3", "CD19"])

        assert means[0] == 3.0
        assert means[1] < 1.0

    def test_isotropic_covariance(self):
        population = Population(name="T", fraction=1.0, spread=0.5)
        cov = population.covariance(["CD3", "CD4"])

        np.testing.assert_allclose(cov, np.eye(2) * 0.25)

    def test_correlated_covariance(self):
        """Test that correlations produce a symmetric off-diagonal term."""
        population = Population(
            name="CD8 T",
            fraction=1.0,
            spread={"CD8": 1.0, "CD56": 2.0},
            correlations={("CD8", "CD56"): 0.5},
        )
        cov = population.covariance(["CD8", "CD56"])

        assert cov[0, 1] == pytest.approx(1.0)
        assert cov[1, 0] == pytest.approx(1.0)
        assert cov[1, 1] == pytest.approx(4.0)

    def test_default_populations(self):
        """Test that the default panel has unequal, rare and elongated populations."""
        populations = default_populations()
        fractions = {p.name: p.fraction for p in populations}

        assert len(populations) == 6
        assert sum(fractions.values()) == pytest.approx(1.0)
        assert min(fractions.values()) < 0.05
        assert any(p.correlations for p in populations)


# =============================================================================
# Tests for Synthetic Events
# =============================================================================

class TestGenerateSyntheticEvents:
    """Tests for generate_synthetic_events."""

    def test_shape_and_labels(self, events):
        assert events.n_events == 1000
        assert events.markers == DEFAULT_MARKERS
        assert len(events.labels) == 1000

    def test_all_populations_present(self, events):
        counts = events.label_counts()

        assert set(counts.index) == {p.name for p in default_populations()}
        assert counts.idxmax() == "CD4 T"
        assert counts.sum() == 1000

    def test_reproducibility(self):
        first = generate_synthetic_events(n_events=200, random_state=7)
        second = generate_synthetic_events(n_events=200, random_state=7)

        pd.testing.assert_frame_equal(first.data, second.data)
        np.testing.assert_array_equal(first.labels, second.labels)

    def test_different_seeds_differ(self):
        first = generate_synthetic_events(n_events=200, random_state=1)
        second = generate_synthetic_events(n_events=200, random_state=2)

        assert not np.allclose(first.to_numpy(), second.to_numpy())

    def test_raw_scale_inverts_transform(self):
        """Test that arcsinh of raw events recovers the transformed events."""
        transformed = generate_synthetic_events(n_events=300, random_state=3)
        raw = generate_synthetic_events(n_events=300, random_state=3, as_raw=True, cofactor=150.0)

        np.testing.assert_allclose(
            arcsinh_transform(raw.data, cofactor=150.0).to_numpy(),
            transformed.to_numpy(),
            atol=1e-8,
        )

    def test_custom_populations(self):
        populations = [
            Population(name="A", fraction=0.5, means={"M1": 3.0}),
            Population(name="B", fraction=0.5, means={"M2": 3.0}),
        ]
        events = generate_synthetic_events(n_events=100, populations=populations, markers=["M1", "M2"])

        assert events.markers == ["M1", "M2"]
        assert events.label_counts().to_dict() == {"A": 50, "B": 50}

    def test_unshuffled_events_are_grouped(self):
        events = generate_synthetic_events(n_events=100, shuffle=False)
        assert events.labels[0] == default_populations()[0].name

    def test_empty_populations_raises(self):
        with pytest.raises(ValueError, match="At least one population"):
            generate_synthetic_events(n_events=10, populations=[])


# =============================================================================
# Tests for EventTable
# =============================================================================

class TestEventTable:
    """Tests for the EventTable container."""

    def test_label_length_mismatch_raises(self):
        with pytest.raises(ValueError, match="labels"):
            EventTable(data=pd.DataFrame({"CD3": [1.0, 2.0]}), labels=np.array(["a"]))

    def test_to_numpy_subset(self, events):
        X = events.to_numpy(["CD3", "CD19"])
        assert X.shape == (1000, 2)

    def test_subsample(self, events):
        subset = events.subsample(100, random_state=0)

        assert subset.n_events == 100
        assert len(subset.labels) == 100
        assert subset.markers == events.markers

    def test_subsample_larger_than_table(self, events):
        assert events.subsample(5000) is events

    def test_label_counts_without_labels(self):
        table = EventTable(data=pd.DataFrame({"CD3": [1.0]}))
        assert table.label_counts().empty

    def test_to_dataframe_includes_labels(self, events):
        df = events.to_dataframe()

        assert LABEL_COLUMN in df.columns
        assert LABEL_COLUMN not in events.to_dataframe(include_labels=False).columns

    def test_save_and_load_round_trip(self, events, tmp_path):
        """Test that labels survive a CSV round trip."""
        path = events.save(tmp_path / "events.csv")
        loaded = load_events(path)

        assert loaded.markers == events.markers
        np.testing.assert_array_equal(loaded.labels, events.labels)
        np.testing.assert_allclose(loaded.to_numpy(), events.to_numpy())

    def test_len_and_repr(self, events):
        assert len(events) == 1000
        assert "n_events=1000" in repr(events)


# =============================================================================
# Tests for Transforms
# =============================================================================

class TestArcsinhTransform:
    """Tests for the arcsinh transform and its inverse."""

    def test_known_values(self, linear_df):
        out = arcsinh_transform(linear_df, cofactor=150.0)

        assert out["FL1"].iloc[0] == 0.0
        assert out["FL1"].iloc[1] == pytest.approx(np.arcsinh(1.0))
        assert out["FL1"].iloc[3] == pytest.approx(-np.arcsinh(1.0))

    def test_non_numeric_columns_untouched(self, linear_df):
        out = arcsinh_transform(linear_df)

        assert out["sample"].tolist() == linear_df["sample"].tolist()

    def test_selected_markers_only(self, linear_df):
        out = arcsinh_transform(linear_df, markers=["FL1"])

        pd.testing.assert_series_equal(out["FL2"], linear_df["FL2"])

    def test_does_not_modify_input(self, linear_df):
        original = linear_df.copy()
        arcsinh_transform(linear_df)

        pd.testing.assert_frame_equal(linear_df, original)

    def test_inverse(self, linear_df):
        restored = inverse_arcsinh_transform(arcsinh_transform(linear_df, cofactor=5.0), cofactor=5.0)

        np.testing.assert_allclose(restored["FL1"], linear_df["FL1"])

    @pytest.mark.parametrize("cofactor", [0.0, -5.0])
    def test_invalid_cofactor_raises(self, linear_df, cofactor):
        with pytest.raises(ValueError, match="cofactor"):
            arcsinh_transform(linear_df, cofactor=cofactor)

    def test_missing_marker_raises(self, linear_df):
        with pytest.raises(ValueError, match="Markers not found"):
            arcsinh_transform(linear_df, markers=["FL9"])


class TestCompensate:
    """Tests for spillover compensation."""

    def test_removes_spillover(self, linear_df, spillover):
        """Test that compensating spilled data recovers the true signal."""
        true = linear_df[["FL1", "FL2"]].to_numpy()
        observed = linear_df.copy()
        observed[["FL1", "FL2"]] = true @ spillover.to_numpy()

        compensated = compensate(observed, spillover)

        np.testing.assert_allclose(compensated[["FL1", "FL2"]].to_numpy(), true, atol=1e-9)
        assert compensated["sample"].tolist() == linear_df["sample"].tolist()

    def test_identity_is_noop(self, linear_df):
        identity = pd.DataFrame(np.eye(2), index=["FL1", "FL2"], columns=["FL1", "FL2"])

        pd.testing.assert_frame_equal(compensate(linear_df, identity), linear_df)

    def test_non_square_raises(self, linear_df):
        spillover = pd.DataFrame([[1.0, 0.1]], index=["FL1"], columns=["FL1", "FL2"])

        with pytest.raises(ValueError, match="square"):
            compensate(linear_df, spillover)

    def test_mismatched_channels_raises(self, linear_df):
        spillover = pd.DataFrame(np.eye(2), index=["FL2", "FL1"], columns=["FL1", "FL2"])

        with pytest.raises(ValueError, match="same channels"):
            compensate(linear_df, spillover)


# =============================================================================
# Tests for Loading
# =============================================================================

class TestLoadEvents:
    """Tests for load_events."""

    def test_csv_without_labels(self, tmp_path):
        path = tmp_path / "events.csv"
        pd.DataFrame({"CD3": [1.0, 2.0], "CD4": [3.0, 4.0]}).to_csv(path, index=False)

        events = load_events(path)

        assert events.labels is None
        assert events.markers == ["CD3", "CD4"]
        assert events.name == "events"

    def test_marker_selection(self, tmp_path):
        path = tmp_path / "events.tsv"
        pd.DataFrame({"CD3": [1.0], "CD4": [3.0], "CD8": [0.5]}).to_csv(path, sep="\t", index=False)

        events = load_events(path, markers=["CD8", "CD3"])

        assert events.markers == ["CD8", "CD3"]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_events(tmp_path / "missing.csv")

    def test_unsupported_suffix_raises(self, tmp_path):
        path = tmp_path / "events.txt"
        path.write_text("CD3\n1.0\n")

        with pytest.raises(ValueError, match="Unsupported"):
            load_events(path)

    def test_fcs_without_fcsparser_raises(self, tmp_path, monkeypatch):
        """Test the install hint when the optional FCS reader is missing."""
        path = tmp_path / "sample.fcs"
        path.write_bytes(b"")
        monkeypatch.setitem(sys.modules, "fcsparser", None)

        with pytest.raises(ImportError, match="fcsparser"):
            load_events(path)
