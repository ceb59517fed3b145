"""node-label-inheritor: copy requested node labels onto the pods scheduled there."""

__version__ = "0.1.0"
