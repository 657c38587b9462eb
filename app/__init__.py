"""medblock-records - API d'exposition contrôlée des dossiers patients."""

__version__ = "0.1.0"
