"""Label, annotation and finalizer keys stamped on managed objects."""

from typing import Optional

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "argo-ephemeral-operator"

OWNER_LABEL = "ephemeral.argo.io/owner"
INLINE_LABEL = "ephemeral.argo.io/inline"
COPIED_FROM_LABEL = "ephemeral.argo.io/copied-from"
SOURCE_NAME_LABEL = "ephemeral.argo.io/source-name"
SOURCE_NAMESPACE_ANNOTATION = "ephemeral.argo.io/source-namespace"

FINALIZER = "ephemeral.argo.io/finalizer"


def ownership_labels(owner: str) -> dict[str, str]:
    """Labels marking an object as created for the given EphemeralApplication."""
    return {
        MANAGED_BY_LABEL: MANAGED_BY_VALUE,
        OWNER_LABEL: owner,
    }


def provenance_metadata(
    owner: str,
    source_annotation: str,
    source_namespace: Optional[str] = None,
    source_name: Optional[str] = None,
) -> tuple[dict[str, str], dict[str, str]]:
    """
    Build labels and annotations for a provisioned secret or configmap.

    Inline objects get ``inline=true``. Copied objects record where they came
    from, both as labels (for selectors) and annotations.

    Args:
        owner: Name of the owning EphemeralApplication
        source_annotation: Annotation key holding the source object name
        source_namespace: Namespace the object was copied from (None for inline)
        source_name: Name of the source object (None for inline)

    Returns:
        (labels, annotations)
    """
    labels = ownership_labels(owner)
    annotations: dict[str, str] = {}

    if source_namespace is None:
        labels[INLINE_LABEL] = "true"
    else:
        labels[COPIED_FROM_LABEL] = source_namespace
        labels[SOURCE_NAME_LABEL] = source_name
        annotations[SOURCE_NAMESPACE_ANNOTATION] = source_namespace
        annotations[source_annotation] = source_name

    return labels, annotations
