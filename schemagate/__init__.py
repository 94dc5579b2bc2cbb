# ==============================================
# SchemaGate: Dynamic Schema Gateway
# ==============================================
#
# Package Structure:
#
# schemagate/
# ├── storage/          # Storage driver adapter (MongoDB, in-memory)
# ├── inference/        # Type detection, schema inference, write validation
# ├── api/              # FastAPI HTTP surface
# ├── allocator.py      # Database allocation / resolution
# ├── dispatcher.py     # Generic CRUD dispatch
# ├── registry.py       # In-memory handle + descriptor registry
# ├── gateway.py        # Orchestrator wiring everything together
# ├── models.py         # Shared data classes
# ├── errors.py         # Error taxonomy
# ├── config.py         # Configuration management
# ├── client.py         # HTTP client for a running gateway
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
