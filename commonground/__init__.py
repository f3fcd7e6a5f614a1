"""CommonGround – where can everyone get to in time?"""

__version__ = "0.3.0"
