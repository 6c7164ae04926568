"""Library for reading ArgoCD Application manifests and their Helm sources.

An Application may be single source (`spec.source`) or multi source
(`spec.sources`). Each source is tagged by the fields that are set:

- `chart` set: a Helm chart source
- `path` set and `chart` unset: a kustomize path source
- `ref` set: a git reference that provides `$values/` files to other sources

This example finds the Helm charts used by Applications in a repository:
```python
from gitops_shadow import argocd

for app in argocd.discover_helm_applications(Path("/src/homelab")):
    for source in app.helm_sources():
        value_files = argocd.resolve_value_files(
            source.helm.value_files if source.helm else [], repo_root
        )
        print(f"{app.name}: {source.chart} {value_files}")
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import yaml

from .exceptions import InputException, ValuesFileNotFound
from .manifest import APPLICATION_KIND, BaseManifest

__all__ = [
    "Application",
    "Source",
    "HelmConfig",
    "parse_application",
    "read_applications",
    "discover_applications",
    "discover_helm_applications",
    "resolve_value_files",
    "is_oci_registry",
    "normalize_oci_url",
]

_LOGGER = logging.getLogger(__name__)

APPS_DIR = "argocd-apps"
VALUES_PREFIX = "$values/"
OCI_SCHEME = "oci://"
YAML_SUFFIXES = (".yaml", ".yml")
KUSTOMIZATION_FILES = ("kustomization.yaml", "kustomization.yml")

# Registries that ArgoCD may reference without the oci:// scheme. Private
# registries without the scheme are not detected.
OCI_REGISTRY_HOSTS = (
    "docker.io",
    "ghcr.io",
    "quay.io",
    "registry.k8s.io",
    "gcr.io",
    "public.ecr.aws",
    "mcr.microsoft.com",
)


@dataclass
class HelmConfig(BaseManifest):
    """The `helm` block of an Application source."""

    release_name: str | None = None
    """Overrides the release name, which defaults to the Application name."""

    value_files: list[str] = field(default_factory=list)
    """Value files, e.g. `$values/apps/krr/base/values.yaml`."""

    values: str | None = None
    """Inline values as a YAML string."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "HelmConfig":
        """Parse a HelmConfig from the source `helm` block."""
        values = doc.get("values")
        if values is None and (values_object := doc.get("valuesObject")):
            values = values_object
        if values is not None and not isinstance(values, str):
            values = yaml.dump(values, sort_keys=False)
        return cls(
            release_name=doc.get("releaseName") or None,
            value_files=list(doc.get("valueFiles") or []),
            values=values or None,
        )


@dataclass
class Source(BaseManifest):
    """A single source of an Application."""

    repo_url: str = ""
    target_revision: str = ""

    path: str | None = None
    """Path within the repository for kustomize sources."""

    chart: str | None = None
    """Chart name for Helm sources."""

    helm: HelmConfig | None = None

    ref: str | None = None
    """Name used by other sources to reference this one as `$<ref>/`."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Source":
        """Parse a Source from an Application spec."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid Application source: {doc}")
        helm = doc.get("helm")
        return cls(
            repo_url=doc.get("repoURL") or "",
            target_revision=str(doc.get("targetRevision") or ""),
            path=doc.get("path") or None,
            chart=doc.get("chart") or None,
            helm=HelmConfig.parse_doc(helm) if isinstance(helm, dict) else None,
            ref=doc.get("ref") or None,
        )

    @property
    def is_helm(self) -> bool:
        """Return True if this source is a Helm chart."""
        return bool(self.chart)

    @property
    def is_kustomize(self) -> bool:
        """Return True if this source is a kustomize path."""
        return bool(self.path) and not self.chart

    @property
    def is_ref(self) -> bool:
        """Return True if this source only provides `$values` files."""
        return bool(self.ref)

    @property
    def is_oci(self) -> bool:
        """Return True if the chart comes from an OCI registry."""
        return is_oci_registry(self.repo_url)


@dataclass
class Application(BaseManifest):
    """A representation of an ArgoCD Application."""

    name: str
    """Taken from metadata.name."""

    namespace: str = ""
    """Taken from spec.destination.namespace."""

    source: Source | None = None
    """Single source configuration."""

    sources: list[Source] = field(default_factory=list)
    """Multi source configuration."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Application":
        """Parse an Application from a resource object."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid Application document: {doc}")
        if (kind := doc.get("kind")) != APPLICATION_KIND:
            raise InputException(f"Not an Application resource (kind={kind})")
        metadata = doc.get("metadata") or {}
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid Application missing metadata.name: {doc}")
        spec = doc.get("spec") or {}
        destination = spec.get("destination") or {}
        source = spec.get("source")
        return cls(
            name=name,
            namespace=destination.get("namespace") or "",
            source=Source.parse_doc(source) if source else None,
            sources=[Source.parse_doc(src) for src in spec.get("sources") or []],
        )

    @property
    def has_multiple_sources(self) -> bool:
        """Return True if the Application uses multi source configuration."""
        return len(self.sources) > 0

    def _all_sources(self) -> list[Source]:
        # sources[] entries come before the single source, duplicates kept
        return self.sources + ([self.source] if self.source else [])

    def helm_sources(self) -> list[Source]:
        """Return all Helm chart sources."""
        return [src for src in self._all_sources() if src.is_helm]

    def kustomize_sources(self) -> list[Source]:
        """Return all kustomize path sources."""
        return [src for src in self._all_sources() if src.is_kustomize]

    def kustomize_paths(self) -> list[str]:
        """Return the repository relative paths of kustomize sources."""
        return [src.path for src in self.kustomize_sources() if src.path]


def parse_application(doc: dict[str, Any]) -> Application:
    """Parse a single Application resource object."""
    return Application.parse_doc(doc)


def read_applications(path: Path) -> list[Application]:
    """Read all Application documents in a yaml file.

    Documents of other kinds are ignored. Raises `InputException` if the
    file is not valid yaml.
    """
    try:
        docs = list(yaml.safe_load_all(path.read_text()))
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse {path}: {err}") from err
    apps = []
    for doc in docs:
        if not isinstance(doc, dict) or doc.get("kind") != APPLICATION_KIND:
            continue
        apps.append(Application.parse_doc(doc))
    return apps


def discover_applications(repo_root: Path) -> list[Path]:
    """Return the Application manifest files in the repository."""
    apps_dir = repo_root / APPS_DIR
    if not apps_dir.is_dir():
        return []
    return sorted(
        path
        for path in apps_dir.rglob("*")
        if path.is_file()
        and path.suffix in YAML_SUFFIXES
        and path.name not in KUSTOMIZATION_FILES
    )


def discover_helm_applications(repo_root: Path) -> list[Application]:
    """Return the Applications that have at least one Helm source."""
    helm_apps = []
    for path in discover_applications(repo_root):
        try:
            apps = read_applications(path)
        except InputException as err:
            _LOGGER.debug("Skipping %s: %s", path, err)
            continue
        helm_apps.extend(app for app in apps if app.helm_sources())
    _LOGGER.debug("Discovered %d Applications with Helm sources", len(helm_apps))
    return helm_apps


def resolve_value_files(value_files: list[str], repo_root: Path) -> list[str]:
    """Resolve `$values/` references in value files to local paths.

    Entries without the prefix are passed through unchanged. Raises
    `ValuesFileNotFound` for the first reference that does not exist.
    """
    resolved = []
    for value_file in value_files:
        if not value_file.startswith(VALUES_PREFIX):
            resolved.append(value_file)
            continue
        full_path = (repo_root / value_file[len(VALUES_PREFIX) :]).absolute()
        if not full_path.exists():
            raise ValuesFileNotFound(value_file, str(full_path))
        resolved.append(str(full_path))
    return resolved


def is_oci_registry(url: str) -> bool:
    """Return True if the url refers to an OCI registry.

    This handles both explicit oci:// urls and well known registry hosts
    used without a scheme.
    """
    if url.startswith(OCI_SCHEME):
        return True
    return any(url.startswith(f"{host}/") for host in OCI_REGISTRY_HOSTS)


def normalize_oci_url(url: str) -> str:
    """Return the url with an oci:// scheme as expected by helm."""
    if url.startswith(OCI_SCHEME):
        return url
    return f"{OCI_SCHEME}{url}"
