"""
Fixture orchestration: turns approved participants into rounds and matches.

Every entry point runs under the tournament lock and inside the caller's
transaction, so a failure rolls back everything written so far. The groups
phase also deletes what it created before raising PartialFailure.
"""
import logging
import random

from sqlalchemy.exc import SQLAlchemyError

from app import repository as repo
from app.core.pairing import (
    arrange_cross_group_seeding,
    generate_round_robin,
    generate_single_elimination,
    group_by_round,
    is_power_of_two,
    seeded_entry_order,
)
from app.core.phases import (
    PHASE_GROUP,
    can_generate_matches,
    has_duplicate_pairing,
    phase_name,
    phase_type_for,
    uses_two_legs,
)
from app.core.standings import compute_standings, get_scoring_rule
from app.errors import ConflictError, PartialFailure, ValidationError
from app.locks import tournament_lock
from app.settings import DEFAULT_SPORT

logger = logging.getLogger(__name__)

GROUP_NAMES = "ABCDEFGH"


def _check_can_generate(conn, tournament: dict, expected_format: str) -> None:
    if tournament["format"] != expected_format:
        raise ValidationError(
            f"El torneo tiene formato '{tournament['format']}', no se puede generar un fixture '{expected_format}'."
        )
    if tournament["status"] != "pending":
        raise ConflictError("Solo se puede generar el fixture de un torneo pendiente.")
    if repo.count_rounds(conn, tournament["id"]) > 0:
        raise ConflictError("El fixture ya fue generado. Elimina las jornadas antes de regenerar.")


def _approved_team_ids(conn, tournament_id: str, by_seed: bool = False) -> list[str]:
    participants = repo.list_participants(conn, tournament_id, by_seed=by_seed)
    if len(participants) < 2:
        raise ValidationError(f"Se necesitan al menos 2 equipos aprobados (hay {len(participants)}).")
    return [p["team_id"] for p in participants]


def _insert_bracket(
    conn,
    tournament: dict,
    bracket: list[dict],
    first_round_number: int = 1,
) -> dict:
    """
    Persist a flat bracket: one round per bracket round (two for a
    two-legged phase), then the ``next_match_id`` links once every id exists.
    """
    tournament_id = tournament["id"]
    config = tournament["config"]
    ids_by_index: dict[int, list[str]] = {}
    round_number = first_round_number
    rounds_created = 0
    matches_created = 0

    by_round: dict[int, list[dict]] = {}
    for item in bracket:
        by_round.setdefault(item["round"], []).append(item)

    for bracket_round in sorted(by_round):
        items = by_round[bracket_round]
        label = items[0]["round_label"]
        phase_type = phase_type_for(label, len(items))
        two_legs = uses_two_legs(config, phase_type)
        name = phase_name(phase_type)
        playable = [m for m in items if not m["is_bye"]]

        if two_legs:
            ida_id = repo.insert_round(
                conn, tournament_id, round_number, f"{name} - Ida", phase_type, True, len(playable)
            )
            vuelta_id = repo.insert_round(
                conn, tournament_id, round_number + 1, f"{name} - Vuelta", phase_type, True, len(playable)
            )
            round_number += 2
            rounds_created += 2
            for item in playable:
                leg1_id = item["id"]
                leg2_id = repo.insert_match(
                    conn,
                    {
                        "tournament_id": tournament_id,
                        "round_id": vuelta_id,
                        "sort_order": item["sort_order"],
                        "home_team_id": item["away_team_id"],
                        "away_team_id": item["home_team_id"],
                        "round_label": label,
                        "is_second_leg": True,
                    },
                )
                repo.insert_match(
                    conn,
                    {
                        "id": leg1_id,
                        "tournament_id": tournament_id,
                        "round_id": ida_id,
                        "sort_order": item["sort_order"],
                        "home_team_id": item["home_team_id"],
                        "away_team_id": item["away_team_id"],
                        "round_label": label,
                        "is_first_leg": True,
                        "paired_match_id": leg2_id,
                    },
                )
                repo.update_match(conn, leg2_id, {"paired_match_id": leg1_id})
                ids_by_index[item["index"]] = [leg1_id, leg2_id]
                matches_created += 2
        else:
            round_id = repo.insert_round(conn, tournament_id, round_number, name, phase_type, False, len(playable))
            round_number += 1
            rounds_created += 1
            for item in playable:
                repo.insert_match(
                    conn,
                    {
                        "id": item["id"],
                        "tournament_id": tournament_id,
                        "round_id": round_id,
                        "sort_order": item["sort_order"],
                        "home_team_id": item["home_team_id"],
                        "away_team_id": item["away_team_id"],
                        "round_label": label,
                    },
                )
                ids_by_index[item["index"]] = [item["id"]]
                matches_created += 1

    for item in bracket:
        if item["next_match_index"] is None or item["index"] not in ids_by_index:
            continue
        # the first leg of a two-legged target receives the winner
        target_id = ids_by_index[item["next_match_index"]][0]
        for match_id in ids_by_index[item["index"]]:
            repo.update_match(conn, match_id, {"next_match_id": target_id, "next_slot": item["next_slot"]})

    return {"rounds_created": rounds_created, "matches_created": matches_created}


def generate_league_fixture(conn, tournament_id: str, double_round: bool | None = None) -> dict:
    with tournament_lock(conn, tournament_id):
        tournament = repo.get_tournament(conn, tournament_id)
        _check_can_generate(conn, tournament, "league")

        if double_round is None:
            double_round = bool(tournament["config"].get("double_round"))

        team_ids = _approved_team_ids(conn, tournament_id)
        random.shuffle(team_ids)
        rounds = group_by_round(generate_round_robin(team_ids, double_round))

        matches_created = 0
        for number, items in rounds.items():
            round_id = repo.insert_round(conn, tournament_id, number, f"Jornada {number}")
            for item in items:
                repo.insert_match(
                    conn,
                    {
                        "tournament_id": tournament_id,
                        "round_id": round_id,
                        "sort_order": item["sort_order"],
                        "home_team_id": item["home_team_id"],
                        "away_team_id": item["away_team_id"],
                    },
                )
                matches_created += 1

        config = dict(tournament["config"])
        config["double_round"] = double_round
        repo.set_tournament_config(conn, tournament_id, config)
        repo.set_tournament_status(conn, tournament_id, "active")

        logger.info(
            "Liga %s: %d jornadas, %d partidos (ida y vuelta=%s)",
            tournament_id, len(rounds), matches_created, double_round,
        )
        return {"rounds_created": len(rounds), "matches_created": matches_created}


def generate_single_elimination_fixture(conn, tournament_id: str, use_seeding: bool | None = None) -> dict:
    with tournament_lock(conn, tournament_id):
        tournament = repo.get_tournament(conn, tournament_id)
        _check_can_generate(conn, tournament, "single_elimination")

        config = tournament["config"]
        if use_seeding is None:
            use_seeding = bool(config.get("use_seeding"))
        allow_byes = bool(config.get("allow_byes"))

        team_ids = _approved_team_ids(conn, tournament_id, by_seed=use_seeding)
        if not is_power_of_two(len(team_ids)) and not allow_byes:
            raise ValidationError(
                f"La eliminación directa requiere una cantidad de equipos potencia de 2 (2, 4, 8, 16...). Hay {len(team_ids)}."
            )

        if use_seeding:
            entries = seeded_entry_order(team_ids)
        else:
            random.shuffle(team_ids)
            entries = team_ids

        bracket = generate_single_elimination(entries, allow_byes=allow_byes)
        created = _insert_bracket(conn, tournament, bracket)

        config = dict(config)
        config["use_seeding"] = use_seeding
        repo.set_tournament_config(conn, tournament_id, config)
        repo.set_tournament_status(conn, tournament_id, "active")

        logger.info(
            "Eliminación directa %s: %d equipos, %d jornadas, %d partidos",
            tournament_id, len(team_ids), created["rounds_created"], created["matches_created"],
        )
        return created


def _assign_groups(team_ids: list[str], num_groups: int, custom_assignments: dict | None) -> dict[str, list[str]]:
    group_names = list(GROUP_NAMES[:num_groups])

    if custom_assignments:
        groups = {g: [] for g in group_names}
        assigned: set[str] = set()
        known = set(team_ids)
        for group_name, members in custom_assignments.items():
            if group_name not in groups:
                raise ValidationError(f"El grupo '{group_name}' no es válido para {num_groups} grupos.")
            if len(members) < 2:
                raise ValidationError(f"El grupo {group_name} debe tener al menos 2 equipos.")
            for team_id in members:
                if team_id not in known:
                    raise ValidationError(f"El equipo {team_id} no está aprobado en este torneo.")
                if team_id in assigned:
                    raise ValidationError(f"El equipo {team_id} está asignado a múltiples grupos.")
                assigned.add(team_id)
            groups[group_name] = list(members)

        if len(assigned) != len(team_ids):
            raise ValidationError(
                f"La asignación manual está incompleta. Asignados: {len(assigned)}, Total: {len(team_ids)}."
            )
        empty = [g for g, members in groups.items() if len(members) < 2]
        if empty:
            raise ValidationError(f"Los grupos {', '.join(empty)} deben tener al menos 2 equipos.")
        return groups

    shuffled = list(team_ids)
    random.shuffle(shuffled)
    groups = {g: [] for g in group_names}
    for index, team_id in enumerate(shuffled):
        groups[group_names[index % num_groups]].append(team_id)
    return groups


def generate_groups_phase(
    conn,
    tournament_id: str,
    num_groups: int,
    qualifiers_per_group: int,
    double_round: bool = False,
    custom_assignments: dict | None = None,
) -> dict:
    with tournament_lock(conn, tournament_id):
        tournament = repo.get_tournament(conn, tournament_id)
        _check_can_generate(conn, tournament, "groups_then_playoff")

        if num_groups < 2 or num_groups > len(GROUP_NAMES):
            raise ValidationError(f"La cantidad de grupos debe estar entre 2 y {len(GROUP_NAMES)}.")
        if qualifiers_per_group < 1:
            raise ValidationError("Debe clasificar al menos 1 equipo por grupo.")

        team_ids = _approved_team_ids(conn, tournament_id)
        if len(team_ids) < num_groups * 2:
            raise ValidationError(
                f"Se necesitan al menos {num_groups * 2} equipos para {num_groups} grupos (mínimo 2 por grupo)."
            )

        total_qualified = num_groups * qualifiers_per_group
        if total_qualified < 2 or not is_power_of_two(total_qualified):
            raise ValidationError(
                f"El total de clasificados ({total_qualified} = {num_groups} grupos × {qualifiers_per_group} por grupo) "
                "debe ser potencia de 2 (2, 4, 8, 16...)."
            )

        groups = _assign_groups(team_ids, num_groups, custom_assignments)
        fixtures = {g: group_by_round(generate_round_robin(members, double_round)) for g, members in groups.items()}

        try:
            with conn.begin_nested():
                for group_name, members in groups.items():
                    for team_id in members:
                        repo.set_participant_group(conn, tournament_id, team_id, group_name)

                max_rounds = max(len(rounds) for rounds in fixtures.values())
                matches_created = 0
                for number in range(1, max_rounds + 1):
                    round_id = repo.insert_round(
                        conn, tournament_id, number, f"Fase de Grupos - Jornada {number}", PHASE_GROUP
                    )
                    sort_order = 1
                    for group_name in groups:
                        for item in fixtures[group_name].get(number, []):
                            repo.insert_match(
                                conn,
                                {
                                    "tournament_id": tournament_id,
                                    "round_id": round_id,
                                    "sort_order": sort_order,
                                    "home_team_id": item["home_team_id"],
                                    "away_team_id": item["away_team_id"],
                                },
                            )
                            sort_order += 1
                            matches_created += 1

                config = dict(tournament["config"])
                config.update(
                    {
                        "num_groups": num_groups,
                        "qualifiers_per_group": qualifiers_per_group,
                        "double_round": double_round,
                    }
                )
                repo.set_tournament_config(conn, tournament_id, config)
                repo.set_tournament_status(conn, tournament_id, "active")
        except SQLAlchemyError as exc:
            logger.warning("Fase de grupos %s falló, eliminando jornadas parciales: %s", tournament_id, exc)
            try:
                repo.delete_rounds_for_tournament(conn, tournament_id)
                repo.clear_participant_groups(conn, tournament_id)
            except SQLAlchemyError:
                logger.exception("No se pudieron eliminar las jornadas parciales de %s", tournament_id)
                raise PartialFailure(
                    "Error al generar la fase de grupos. ADVERTENCIA: no se pudieron eliminar las jornadas "
                    "parciales; elimínalas manualmente antes de reintentar."
                ) from exc
            raise PartialFailure(f"Error al generar la fase de grupos: {exc}") from exc

        logger.info(
            "Fase de grupos %s: %d grupos, %d jornadas, %d partidos",
            tournament_id, num_groups, max_rounds, matches_created,
        )
        return {
            "rounds_created": max_rounds,
            "matches_created": matches_created,
            "groups": groups,
        }


def group_standings(conn, tournament: dict) -> dict[str, list[dict]]:
    """Standings per group, computed over group-phase matches only."""
    scoring = get_scoring_rule(tournament["config"].get("sport") or DEFAULT_SPORT)
    participants = repo.list_participants(conn, tournament["id"])
    matches = [m for m in repo.list_matches(conn, tournament["id"]) if not m["round_label"]]

    teams_by_group: dict[str, list[dict]] = {}
    for p in participants:
        if p["group_name"]:
            teams_by_group.setdefault(p["group_name"], []).append({"id": p["team_id"], "name": p["name"]})

    tables = {}
    for group_name in sorted(teams_by_group):
        members = {t["id"] for t in teams_by_group[group_name]}
        group_matches = [m for m in matches if m["home_team_id"] in members and m["away_team_id"] in members]
        tables[group_name] = compute_standings(teams_by_group[group_name], group_matches, scoring)
    return tables


def generate_playoff_from_groups(conn, tournament_id: str) -> dict:
    with tournament_lock(conn, tournament_id):
        tournament = repo.get_tournament(conn, tournament_id)
        if tournament["format"] != "groups_then_playoff":
            raise ValidationError("El torneo no es de fase de grupos + playoff.")
        if tournament["status"] != "active":
            raise ConflictError("La fase de grupos todavía no fue generada o el torneo ya terminó.")

        matches = repo.list_matches(conn, tournament_id)
        if any(m["round_label"] for m in matches):
            raise ConflictError("La fase de playoff ya ha sido generada. Elimina las jornadas de playoff antes de regenerar.")

        group_matches = [m for m in matches if not m["round_label"]]
        if not group_matches:
            raise ValidationError("No hay partidos de fase de grupos.")
        pending = [m for m in group_matches if m["status"] != "finished"]
        if pending:
            raise ValidationError(f"Faltan {len(pending)} partidos de la fase de grupos por finalizar.")

        qualifiers_per_group = int(tournament["config"].get("qualifiers_per_group") or 0)
        tables = group_standings(conn, tournament)
        groups = list(tables)
        if len(groups) < 2:
            raise ValidationError("Se necesitan al menos 2 grupos para generar el playoff.")

        qualifiers = []
        for group_name, table in tables.items():
            if len(table) < qualifiers_per_group:
                raise ValidationError(f"El grupo {group_name} no tiene {qualifiers_per_group} equipos.")
            for position, row in enumerate(table[:qualifiers_per_group], start=1):
                qualifiers.append({"team_id": row["team_id"], "group": group_name, "position": position})

        entries = arrange_cross_group_seeding(qualifiers, groups, qualifiers_per_group)
        bracket = generate_single_elimination(entries)

        last_round = max(r["number"] for r in repo.list_rounds(conn, tournament_id))
        created = _insert_bracket(conn, tournament, bracket, first_round_number=last_round + 1)
        repo.touch_tournament(conn, tournament_id)

        logger.info(
            "Playoff %s: %d clasificados, %d jornadas, %d partidos",
            tournament_id, len(entries), created["rounds_created"], created["matches_created"],
        )
        return {**created, "qualifiers": entries}


def add_match_to_round(conn, round_id: str, home_team_id: str, away_team_id: str) -> str:
    """Manual scheduling inside an existing round."""
    round_row = repo.get_round(conn, round_id)
    tournament_id = round_row["tournament_id"]
    with tournament_lock(conn, tournament_id):
        round_row = repo.get_round(conn, round_id)
        round_matches = repo.list_matches(conn, tournament_id, round_id=round_id)
        can_generate_matches(round_row, round_matches)

        if home_team_id == away_team_id:
            raise ValidationError("Un equipo no puede jugar contra sí mismo.")
        approved = {p["team_id"] for p in repo.list_participants(conn, tournament_id)}
        missing = [t for t in (home_team_id, away_team_id) if t not in approved]
        if missing:
            raise ValidationError("Ambos equipos deben estar aprobados en el torneo.")
        if has_duplicate_pairing(round_matches, home_team_id, away_team_id):
            raise ValidationError("Ya existe un partido entre estos equipos en esta jornada.")

        busy = {m["home_team_id"] for m in round_matches} | {m["away_team_id"] for m in round_matches}
        if home_team_id in busy or away_team_id in busy:
            raise ValidationError("Uno de los equipos ya juega en esta jornada.")

        match_id = repo.insert_match(
            conn,
            {
                "tournament_id": tournament_id,
                "round_id": round_id,
                "sort_order": len(round_matches) + 1,
                "home_team_id": home_team_id,
                "away_team_id": away_team_id,
            },
        )
        logger.info("Partido manual %s agregado a la jornada %s", match_id, round_id)
        return match_id
