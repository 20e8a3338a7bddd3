from .acceptor import ConnectionAcceptor

__all__ = ["ConnectionAcceptor"]
