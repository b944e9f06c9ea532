# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# users doit précéder students/lecturers, eux-mêmes avant achievement_references.

from app.models.user import User  # noqa: F401
from app.models.student import Lecturer, Student  # noqa: F401
from app.models.achievement import AchievementReference, AchievementStatusLog  # noqa: F401
from app.models.document import AchievementDocument  # noqa: F401
