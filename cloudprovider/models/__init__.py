from cloudprovider.models.cloud_object import CloudObject
from cloudprovider.models.relation import ServerRelation
from cloudprovider.models.server import Server

__all__ = ["Server", "ServerRelation", "CloudObject"]
