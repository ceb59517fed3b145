"""HTTP endpoints for node-label-inheritor.

Exposes:
    create_probe_app   -- FastAPI app serving /healthz and /readyz.
    create_metrics_app -- FastAPI app serving Prometheus /metrics.
"""

from node_label_inheritor.api.app import create_metrics_app, create_probe_app

__all__ = ["create_metrics_app", "create_probe_app"]
