"""Tests for the paths library."""

import pytest

from gitops_shadow.manifest import TargetKind
from gitops_shadow.paths import ShapeKind, classify, extract_cluster, match_shape


@pytest.mark.parametrize(
    ("path", "expected_kind", "expected_cluster"),
    [
        ("apps/demo/overlays/home/production", ShapeKind.CLUSTERED_APP, "home"),
        ("apps/demo/stack/cloud/staging", ShapeKind.CLUSTERED_STACK, "cloud"),
        (
            "apps/demo/db/overlays/home/production",
            ShapeKind.CLUSTERED_DB_OVERLAY,
            "home",
        ),
        ("apps/demo/overlays/production", ShapeKind.LEGACY_APP, None),
        ("apps/demo/stack/production", ShapeKind.LEGACY_APP, None),
        ("apps/demo/db/overlays/production", ShapeKind.LEGACY_APP, None),
        ("infrastructure/cert-manager/overlays/home", ShapeKind.INFRA_OVERLAY, "home"),
        ("operators/cnpg/overlays/cloud", ShapeKind.INFRA_OVERLAY, "cloud"),
        ("security/policies/overlays/home", ShapeKind.INFRA_OVERLAY, "home"),
    ],
)
def test_match_shape(
    path: str, expected_kind: ShapeKind, expected_cluster: str | None
) -> None:
    """Test that each supported layout is recognized with its cluster."""
    result = match_shape(path)
    assert result is not None
    shape, cluster = result
    assert shape.kind == expected_kind
    assert cluster == expected_cluster


@pytest.mark.parametrize(
    "path",
    [
        "apps/demo/base",
        "apps/demo/overlays/base",
        "apps/demo/overlays/home/base",
        "apps/demo",
        "apps/demo/components/redis",
        "infrastructure/cert-manager/base",
        "infrastructure/cert-manager/overlays/home/extra",
        "clusters/home/apps",
        "argocd-apps/home",
        "",
    ],
)
def test_not_deployment_relevant(path: str) -> None:
    """Test paths that are not render targets."""
    assert match_shape(path) is None
    assert classify(path) is None


def test_classify() -> None:
    """Test building a render target from a path."""
    target = classify("apps/demo/overlays/home/production")
    assert target is not None
    assert target.path == "apps/demo/overlays/home/production"
    assert target.kind == TargetKind.KUSTOMIZE
    assert target.cluster == "home"
    assert str(target) == "apps/demo/overlays/home/production"


def test_classify_normalizes_path() -> None:
    """Test that leading ./ and trailing slashes are ignored."""
    target = classify("./apps/demo/overlays/production/")
    assert target is not None
    assert target.path == "apps/demo/overlays/production"
    assert target.cluster is None


def test_clustered_shape_takes_precedence() -> None:
    """Test that the longer clustered layout wins over the legacy layout."""
    result = match_shape("apps/web/overlays/home/production")
    assert result is not None
    assert result[0].kind == ShapeKind.CLUSTERED_APP
    assert not result[0].legacy


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("apps/demo/overlays/home/production", ("home", True)),
        ("apps/demo/db/overlays/cloud/production", ("cloud", True)),
        ("operators/cnpg/overlays/cloud", ("cloud", True)),
        ("apps/demo/overlays/production", ("", False)),
        ("apps/demo/base", ("", False)),
        ("README.md", ("", False)),
    ],
)
def test_extract_cluster(path: str, expected: tuple[str, bool]) -> None:
    """Test extracting the cluster name from a path."""
    assert extract_cluster(path) == expected
