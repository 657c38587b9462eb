# Modèles SQLAlchemy pour medblock-records
#
# - Account : personnel (admin, doctor, nurse, front-desk)
# - Patient : dossiers patients
#
# Importés ici pour qu'Alembic détecte toutes les tables.

from .account import Account
from .patient import Patient

__all__ = [
    "Account",
    "Patient",
]
