"""
Tests unitaires des statistiques et du rapport par étudiant.
"""

import uuid

import pytest

from app.schemas.achievement import AchievementContent
from app.schemas.statistics import StatisticsFilters
from app.security import Principal, Role
from app.services.achievement_service import AchievementService
from app.services.errors import NotFoundError, UnauthorizedError
from app.services.history_cache import StatusHistoryCache
from app.services.statistics_service import StatisticsService
from fakes import FakeDocumentStore, FakeIdentityResolver, FakeReferenceStore


# --- Helpers ---

def make_content(achievement_type="competition", level="national") -> AchievementContent:
    return AchievementContent(
        achievement_type=achievement_type,
        title="Prestation",
        details={"competition_level": level} if level else {},
    )


@pytest.fixture
def env():
    references = FakeReferenceStore()
    documents = FakeDocumentStore()
    identities = FakeIdentityResolver()
    achievements = AchievementService(references, documents, identities, StatusHistoryCache())
    stats = StatisticsService(references, documents, identities)

    advisor = identities.add_lecturer()
    alice = identities.add_student(advisor=advisor)
    bob = identities.add_student(advisor=advisor, student_number="S002", full_name="Bob Leroy")
    references.students[alice.id] = ("S001", "Alice Dupont", "Informatique")
    references.students[bob.id] = ("S002", "Bob Leroy", "Informatique")

    as_alice = Principal(user_id=alice.user_id, role=Role.STUDENT)
    as_bob = Principal(user_id=bob.user_id, role=Role.STUDENT)

    a1 = achievements.create(as_alice, make_content("competition", "national"))
    achievements.create(as_alice, make_content("competition", "regional"))
    a3 = achievements.create(as_alice, make_content("publication", None))
    achievements.create(as_bob, make_content("competition", "national"))
    achievements.submit(as_alice, a1.id)
    achievements.delete(as_alice, a3.id)

    return {
        "stats": stats,
        "references": references,
        "documents": documents,
        "identities": identities,
        "advisor": Principal(user_id=advisor.user_id, role=Role.LECTURER),
        "advisor_lecturer": advisor,
        "alice": alice,
        "bob": bob,
        "as_alice": as_alice,
        "as_bob": as_bob,
        "as_admin": Principal(user_id=uuid.uuid4(), role=Role.ADMIN),
    }


def as_dict(items, key):
    return {getattr(item, key): item.count for item in items}


# ============================================================
# Statistiques
# ============================================================

def test_statistiques_etudiant_limitees_a_lui_meme(env):
    result = env["stats"].get_statistics(env["as_alice"], StatisticsFilters())

    assert result.total_achievements == 3
    assert as_dict(result.by_type, "type") == {"competition": 2, "publication": 1}
    assert as_dict(result.level_distribution, "level") == {"national": 1, "regional": 1}
    assert len(result.top_students) == 1
    assert result.top_students[0].student_number == "S001"


def test_statistiques_enseignant_sur_ses_etudiants(env):
    result = env["stats"].get_statistics(env["advisor"], StatisticsFilters())

    assert result.total_achievements == 4
    assert result.by_type[0].type == "competition"
    assert result.by_type[0].count == 3
    assert [s.student_number for s in result.top_students] == ["S001", "S002"]
    assert result.by_period[0].period == "2024-03"


def test_statistiques_distribution_statut_ignore_le_filtre(env):
    """Le filtre de statut restreint le total mais pas la répartition par statut."""
    result = env["stats"].get_statistics(env["as_alice"], StatisticsFilters(status="submitted"))

    assert result.total_achievements == 1
    assert as_dict(result.status_distribution, "status") == {"submitted": 1, "draft": 1, "deleted": 1}


def test_statistiques_admin_filtre_etudiant(env):
    result = env["stats"].get_statistics(env["as_admin"], StatisticsFilters(student_id=env["bob"].id))

    assert result.total_achievements == 1
    assert result.top_students[0].student_id == env["bob"].id


def test_statistiques_ensemble_vide_sans_requete(env):
    """Enseignant sans étudiants suivis → zéros, aucune base interrogée."""
    lonely = env["identities"].add_lecturer(full_name="Prof. Seul")
    env["references"].fail = True
    env["documents"].fail = True

    result = env["stats"].get_statistics(
        Principal(user_id=lonely.user_id, role=Role.LECTURER), StatisticsFilters()
    )

    assert result.total_achievements == 0
    assert result.by_type == []
    assert result.top_students == []


def test_statistiques_sans_profil_ni_role_admin(env):
    with pytest.raises(UnauthorizedError):
        env["stats"].get_statistics(Principal(user_id=uuid.uuid4(), role=Role.STUDENT), StatisticsFilters())


# ============================================================
# Rapport par étudiant
# ============================================================

def test_rapport_etudiant_par_lui_meme(env):
    report = env["stats"].get_student_report(env["as_alice"], env["alice"].id)

    assert report.student.full_name == "Alice Dupont"
    assert report.statistics.total_achievements == 3
    # La prestation supprimée n'apparaît pas dans les récentes
    assert len(report.recent_achievements) == 2
    assert all(a.status != "deleted" for a in report.recent_achievements)


def test_rapport_par_le_referent_et_l_admin(env):
    for principal in (env["advisor"], env["as_admin"]):
        report = env["stats"].get_student_report(principal, env["bob"].id)
        assert report.student.student_number == "S002"


def test_rapport_d_un_autre_etudiant_refuse(env):
    with pytest.raises(UnauthorizedError):
        env["stats"].get_student_report(env["as_bob"], env["alice"].id)


def test_rapport_par_un_enseignant_non_referent(env):
    other = env["identities"].add_lecturer(full_name="Prof. Durand")

    with pytest.raises(UnauthorizedError):
        env["stats"].get_student_report(Principal(user_id=other.user_id, role=Role.LECTURER), env["alice"].id)


def test_rapport_etudiant_inexistant(env):
    with pytest.raises(NotFoundError):
        env["stats"].get_student_report(env["as_admin"], uuid.uuid4())
