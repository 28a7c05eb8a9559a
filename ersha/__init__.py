"""Field-telemetry building blocks: data model, RPC, dispatcher storage and registries."""

__version__ = "0.1.0"