from prometheus_client import CollectorRegistry

# Private registry so embedding applications keep their own default registry clean
REGISTRY = CollectorRegistry(auto_describe=True)
