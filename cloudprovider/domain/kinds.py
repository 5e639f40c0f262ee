import enum


class ResourceKind(str, enum.Enum):
    """Remote object types, valued by the names the remote API uses for them."""

    LOADBALANCER = "loadbalancer"
    IP = "IP"
    NETWORK = "network"
    SERVER = "server"
    SSH_KEY = "sshkey"
    STORAGE = "storage"
    ISO_IMAGE = "isoimage"
    PAAS = "paas"
    SECURITY_ZONE = "security"
    SNAPSHOT = "snapshot"
