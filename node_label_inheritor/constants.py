"""Fixed names shared across the controller."""

from __future__ import annotations

# Pod annotation listing the node label keys to inherit, comma-separated.
INHERIT_ANNOTATION = "nodeLabelsInherited"

DEFAULT_LEADER_ELECTION_ID = "ec750a98.node-label-inheritor.k8s.protosam.github.io"

# Written by the kubelet into every pod that mounts a service account token.
SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
