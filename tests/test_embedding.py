"""
Tests for event embeddings (PCA, UMAP, t-SNE).
"""

import numpy as np
import pytest

from cytoexplore.analysis import embedding as embedding_module
from cytoexplore.analysis.embedding import (
    UMAP_AVAILABLE,
    EmbeddingConfig,
    EventEmbedder,
    get_umap_embedding,
    reduce_dimensions,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sample_features():
    """Three blobs in six markers."""
    rng = np.random.default_rng(0)
    centers = np.array([
        [0, 0, 0, 0, 0, 0],
        [5, 5, 0, 0, 0, 0],
        [0, 0, 5, 5, 0, 0],
    ], dtype=float)
    return np.vstack([rng.normal(c, 0.5, size=(30, 6)) for c in centers])


# =============================================================================
# Tests for EmbeddingConfig
# =============================================================================

class TestEmbeddingConfig:
    """Tests for EmbeddingConfig."""

    def test_default_values(self):
        config = EmbeddingConfig()

        assert config.method == "umap"
        assert config.n_components == 2
        assert config.umap_n_neighbors == 15
        assert config.standardise is True


# =============================================================================
# Tests for EventEmbedder
# =============================================================================

class TestEventEmbedder:
    """Tests for EventEmbedder."""

    def test_invalid_method_raises(self):
        with pytest.raises(ValueError, match="Unknown embedding method"):
            EventEmbedder(method="isomap")

    def test_unknown_option_raises(self):
        with pytest.raises(TypeError, match="Unknown embedding option"):
            EventEmbedder(method="pca", n_trees=10)

    def test_options_set_on_config(self):
        embedder = EventEmbedder(method="pca", pca_whiten=True, standardise=False)

        assert embedder.config.pca_whiten is True
        assert embedder.config.standardise is False

    def test_pca_fit_transform(self, sample_features):
        embedder = EventEmbedder(method="pca", n_components=2)
        coords = embedder.fit_transform(sample_features)

        assert coords.shape == (90, 2)
        assert embedder.is_fitted

    def test_pca_fit_then_transform(self, sample_features):
        """Test that fit + transform matches fit_transform for PCA."""
        embedder = EventEmbedder(method="pca", n_components=3)
        embedder.fit(sample_features)

        np.testing.assert_allclose(
            embedder.transform(sample_features),
            EventEmbedder(method="pca", n_components=3).fit_transform(sample_features),
            atol=1e-8,
        )

    def test_pca_explained_variance_and_loadings(self, sample_features):
        embedder = EventEmbedder(method="pca", n_components=3)
        embedder.fit(sample_features)

        ratios = embedder.explained_variance_ratio_
        assert ratios.shape == (3,)
        assert np.all(np.diff(ratios) <= 0)
        assert embedder.get_loadings().shape == (3, 6)

    def test_explained_variance_none_before_fit(self):
        embedder = EventEmbedder(method="pca")

        assert embedder.explained_variance_ratio_ is None
        assert embedder.get_loadings() is None

    def test_transform_before_fit_raises(self, sample_features):
        embedder = EventEmbedder(method="pca")

        with pytest.raises(RuntimeError, match="must be fitted"):
            embedder.transform(sample_features)

    def test_nan_values_handled(self, sample_features):
        features = sample_features.copy()
        features[0, 0] = np.nan

        coords = EventEmbedder(method="pca").fit_transform(features)
        assert np.isfinite(coords).all()

    def test_tsne_fit_transform(self, sample_features):
        embedder = EventEmbedder(method="tsne", tsne_perplexity=5, tsne_max_iter=250)
        coords = embedder.fit_transform(sample_features)

        assert coords.shape == (90, 2)

    def test_tsne_fit_raises(self, sample_features):
        embedder = EventEmbedder(method="tsne")

        with pytest.raises(RuntimeError, match="fit_transform"):
            embedder.fit(sample_features)

    def test_tsne_transform_raises(self, sample_features):
        embedder = EventEmbedder(method="tsne")

        with pytest.raises(RuntimeError, match="fit_transform"):
            embedder.transform(sample_features)

    def test_umap_import_error_when_not_available(self, monkeypatch):
        """Test the install hint when umap-learn is missing."""
        monkeypatch.setattr(embedding_module, "UMAP_AVAILABLE", False)

        with pytest.raises(ImportError, match="umap-learn"):
            EventEmbedder(method="umap")

    def test_repr(self):
        assert repr(EventEmbedder(method="pca", n_components=3)) == "EventEmbedder(method=pca, n_components=3)"


@pytest.mark.skipif(not UMAP_AVAILABLE, reason="umap-learn not installed")
class TestUMAP:
    """Tests that need umap-learn."""

    def test_umap_embedding(self, sample_features):
        coords = get_umap_embedding(sample_features, n_neighbors=10, random_state=0)

        assert coords.shape == (90, 2)

    def test_umap_3d_with_model(self, sample_features):
        coords, embedder = get_umap_embedding(
            sample_features,
            n_components=3,
            n_neighbors=10,
            random_state=0,
            return_model=True,
        )

        assert coords.shape == (90, 3)
        assert embedder.transform(sample_features[:5]).shape == (5, 3)

    def test_umap_settings_forwarded(self, sample_features):
        _, embedder = get_umap_embedding(
            sample_features,
            n_neighbors=7,
            min_dist=0.3,
            umap_metric="manhattan",
            return_model=True,
        )

        assert embedder.config.umap_n_neighbors == 7
        assert embedder.config.umap_min_dist == 0.3
        assert embedder.config.umap_metric == "manhattan"


# =============================================================================
# Tests for Convenience Functions
# =============================================================================

class TestReduceDimensions:
    """Tests for reduce_dimensions."""

    def test_pca(self, sample_features):
        coords = reduce_dimensions(sample_features, n_components=2, method="pca")
        assert coords.shape == (90, 2)

    def test_options_forwarded(self, sample_features):
        coords = reduce_dimensions(sample_features, n_components=3, method="pca", standardise=False)
        assert coords.shape == (90, 3)

    def test_invalid_method_raises(self, sample_features):
        with pytest.raises(ValueError, match="Unknown embedding method"):
            reduce_dimensions(sample_features, method="invalid")
