"""Teaching stand for small feed-forward networks.

Raw image -> FeatureExtractor -> feature vector -> NetworkEngine (predict / train).
"""

__version__ = "0.1.0"
