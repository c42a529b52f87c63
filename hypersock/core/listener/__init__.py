from .listener import Listener as Listener
