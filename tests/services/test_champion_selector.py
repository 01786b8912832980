import json
from datetime import date
from decimal import Decimal

from leaderboard.models import UNRANKED, IndividualRanking, MonthlyChampion, ProjectRanking
from leaderboard.services.champion_selector import ChampionSelector
from leaderboard.services.entity_store import EntityStore

PERIOD = date(2024, 1, 1)


def _selector(db_session) -> ChampionSelector:
    return ChampionSelector(EntityStore(db_session), min_kloc=1.0)


def _ranking(db_session, developer, **values) -> IndividualRanking:
    values.setdefault("total_kloc", Decimal("5.00"))
    row = IndividualRanking(developer_id=developer.id, ranking_period=PERIOD, **values)
    db_session.add(row)
    db_session.commit()
    return row


def _by_category(champions):
    return {(champion.entity_type, champion.category): champion for champion in champions}


def test_one_champion_per_category_when_ranks_tie(db_session, seed) -> None:
    zed = seed.developer("zed", "Zed Z")
    amy = seed.developer("amy", "Amy A")
    _ranking(db_session, zed, defect_terminator_rank=1, defect_terminator_score=4, violations_resolved=6)
    _ranking(db_session, amy, defect_terminator_rank=1, defect_terminator_score=4, violations_resolved=5)

    champions = _selector(db_session).select_champions(date(2024, 1, 20))

    terminators = [c for c in champions if c.category == "DEFECT_TERMINATOR" and c.entity_type == "INDIVIDUAL"]
    assert len(terminators) == 1
    assert terminators[0].entity_name == "Amy A"
    assert terminators[0].entity_id == amy.id
    assert terminators[0].score == Decimal("4.00")


def test_density_champion_requires_minimum_kloc(db_session, seed) -> None:
    tiny = seed.developer("tiny")
    _ranking(db_session, tiny, total_kloc=Decimal("0.50"), code_rock_rank=1, code_shield_rank=1)

    champions = _by_category(_selector(db_session).select_champions(PERIOD))

    assert ("INDIVIDUAL", "CODE_ROCK") not in champions
    assert ("INDIVIDUAL", "CODE_SHIELD") not in champions


def test_climber_champion_requires_positive_score(db_session, seed) -> None:
    flat = seed.developer("flat")
    _ranking(db_session, flat, climber_rank=1, climber_score=Decimal("0.00"))

    champions = _by_category(_selector(db_session).select_champions(PERIOD))
    assert ("INDIVIDUAL", "CLIMBER") not in champions

    row = db_session.query(IndividualRanking).one()
    row.climber_score = Decimal("1.25")
    db_session.commit()

    champions = _by_category(_selector(db_session).select_champions(PERIOD))
    climber = champions[("INDIVIDUAL", "CLIMBER")]
    assert climber.score == Decimal("1.25")
    assert json.loads(climber.metric_details)["climber_score"] == 1.25


def test_project_champions_skip_climber(db_session, seed) -> None:
    project = seed.project("proj-a", "Project A")
    db_session.add(
        ProjectRanking(
            project_id=project.id,
            ranking_period=PERIOD,
            total_kloc=Decimal("12.00"),
            bugs_introduced=3,
            bugs_per_kloc=Decimal("0.25"),
            code_rock_score=Decimal("0.25"),
            defect_terminator_rank=1,
            code_rock_rank=1,
            code_shield_rank=1,
            craftsman_rank=1,
        )
    )
    db_session.commit()

    champions = _by_category(_selector(db_session).select_champions(PERIOD))

    assert sorted(category for entity_type, category in champions if entity_type == "PROJECT") == [
        "CODE_ROCK",
        "CODE_SHIELD",
        "CRAFTSMAN",
        "DEFECT_TERMINATOR",
    ]
    rock = champions[("PROJECT", "CODE_ROCK")]
    assert rock.entity_name == "Project A"
    assert json.loads(rock.metric_details) == {"bugs_introduced": 3, "bugs_per_kloc": 0.25, "total_kloc": 12.0}


def test_reselection_rebuilds_the_period(db_session, seed) -> None:
    amy = seed.developer("amy")
    bob = seed.developer("bob")
    amy_row = _ranking(db_session, amy, defect_terminator_rank=1, craftsman_rank=1)
    _ranking(db_session, bob, defect_terminator_rank=2, craftsman_rank=UNRANKED)
    selector = _selector(db_session)
    selector.select_champions(PERIOD)

    amy_row.craftsman_rank = UNRANKED
    db_session.commit()
    selector.select_champions(PERIOD)

    stored = db_session.query(MonthlyChampion).filter_by(period=PERIOD).all()
    assert sorted((c.entity_type, c.category) for c in stored) == [("INDIVIDUAL", "DEFECT_TERMINATOR")]
    assert stored[0].entity_id == amy.id


def test_no_rankings_means_no_champions(db_session) -> None:
    assert _selector(db_session).select_champions(PERIOD) == []
    assert db_session.query(MonthlyChampion).count() == 0
