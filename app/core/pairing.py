"""
Pairing generator: round-robin rotations, single-elimination skeletons and
cross-group seeding for the playoff that follows a group phase.

Everything here is pure. Callers shuffle or seed the entrant list before
calling; the output is fully determined by the input order.
"""
import math
from uuid import uuid4

from app.errors import ValidationError

BYE = "__BYE__"

ROUND_FINAL = "Final"
ROUND_SEMIFINAL = "Semifinal"
ROUND_QUARTERFINAL = "Quarterfinal"


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


def _validate_entrants(team_ids: list[str]) -> list[str]:
    teams = list(team_ids)
    if len(teams) < 2:
        raise ValidationError("Se necesitan al menos 2 equipos para generar el fixture.")
    if len(set(teams)) != len(teams):
        raise ValidationError("Hay equipos repetidos en la lista de participantes.")
    return teams


def generate_round_robin(team_ids: list[str], double_round: bool = False) -> list[dict]:
    """
    Circle method. Returns a flat list of matches, each tagged with its
    round number and position inside the round.

    With an odd number of teams a BYE is added: the team paired with it sits
    that round out, so every round still consumes one rotation.
    """
    teams = _validate_entrants(team_ids)
    bye = None
    if len(teams) % 2 == 1:
        bye = BYE
        teams.append(bye)

    rounds = len(teams) - 1
    items = []
    lineup = list(teams)

    for round_no in range(1, rounds + 1):
        sort_order = 1
        for i in range(len(lineup) // 2):
            a = lineup[i]
            b = lineup[-(i + 1)]
            if a == bye or b == bye:
                continue

            if round_no % 2 == 1:
                home, away = a, b
            else:
                home, away = b, a

            items.append(
                {
                    "round": round_no,
                    "sort_order": sort_order,
                    "home_team_id": home,
                    "away_team_id": away,
                }
            )
            sort_order += 1

        lineup = [lineup[0]] + [lineup[-1]] + lineup[1:-1]

    if double_round:
        items += [
            {
                "round": m["round"] + rounds,
                "sort_order": m["sort_order"],
                "home_team_id": m["away_team_id"],
                "away_team_id": m["home_team_id"],
            }
            for m in list(items)
        ]

    return items


def group_by_round(items: list[dict]) -> dict[int, list[dict]]:
    rounds: dict[int, list[dict]] = {}
    for item in items:
        rounds.setdefault(int(item["round"]), []).append(item)
    return {r: sorted(rounds[r], key=lambda m: m["sort_order"]) for r in sorted(rounds)}


def round_label(round_no: int, total_rounds: int) -> str:
    if round_no == total_rounds:
        return ROUND_FINAL
    if round_no == total_rounds - 1:
        return ROUND_SEMIFINAL
    if round_no == total_rounds - 2:
        return ROUND_QUARTERFINAL
    return f"R{round_no}"


def label_for_match_count(match_count: int, round_no: int) -> str:
    """Label for a round whose size is known but whose total depth is not."""
    if match_count == 1:
        return ROUND_FINAL
    if match_count == 2:
        return ROUND_SEMIFINAL
    if match_count == 4:
        return ROUND_QUARTERFINAL
    return f"R{round_no}"


def bracket_seed_order(bracket_size: int) -> list[int]:
    """
    Standard bracket placement for seeds 1..bracket_size.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6], so 1v8, 4v5, 2v7, 3v6 and the
    top two seeds can only meet in the final.
    """
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = bracket_seed_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def seeded_entry_order(team_ids: list[str]) -> list[str | None]:
    """
    Place a seed-ordered list into bracket positions. Missing seeds (when the
    list is shorter than the next power of two) become None, i.e. byes that
    land against the top seeds.
    """
    size = 2 ** math.ceil(math.log2(max(len(team_ids), 2)))
    return [team_ids[seed - 1] if seed <= len(team_ids) else None for seed in bracket_seed_order(size)]


def generate_single_elimination(team_ids: list, allow_byes: bool = False) -> list[dict]:
    """
    Flat bracket: round 1 pairs entries 0-1, 2-3, ...; every later round is
    a block of TBD matches. Match ``i`` of a round feeds match ``i // 2`` of
    the next one (``next_match_index`` indexes into the flat list) and takes
    the home slot when ``i`` is even.

    ``team_ids`` must have a power-of-two length. With ``allow_byes`` any
    length is accepted and padded through ``seeded_entry_order``, so every
    round-1 match holds at most one bye; a None entry is a bye. Bye matches
    stay in the list (flagged ``is_bye``) so index arithmetic holds, and their
    entrant is already placed in the next match.
    """
    entries = list(team_ids)
    real = [t for t in entries if t is not None]
    if len(real) < 2:
        raise ValidationError("Se necesitan al menos 2 equipos para generar el bracket.")
    if len(set(real)) != len(real):
        raise ValidationError("Hay equipos repetidos en la lista de participantes.")

    if not is_power_of_two(len(entries)):
        if not allow_byes:
            raise ValidationError(
                f"La eliminación directa requiere una cantidad de equipos potencia de 2 (2, 4, 8, 16...). Hay {len(entries)}."
            )
        entries = seeded_entry_order(entries)

    total = len(entries)
    rounds_count = int(math.log2(total))

    bracket: list[dict] = []
    matches_in_round = total // 2
    for round_no in range(1, rounds_count + 1):
        start = len(bracket)
        next_start = start + matches_in_round
        for i in range(matches_in_round):
            home = away = None
            if round_no == 1:
                home, away = entries[i * 2], entries[i * 2 + 1]
                if home is None and away is None:
                    raise ValidationError("Un partido de primera ronda no puede tener dos byes.")
            is_last = round_no == rounds_count
            bracket.append(
                {
                    "id": str(uuid4()),
                    "index": start + i,
                    "round": round_no,
                    "round_label": round_label(round_no, rounds_count),
                    "sort_order": i + 1,
                    "home_team_id": home,
                    "away_team_id": away,
                    "next_match_index": None if is_last else next_start + i // 2,
                    "next_slot": None if is_last else ("home" if i % 2 == 0 else "away"),
                    "is_bye": round_no == 1 and (home is None or away is None),
                }
            )
        matches_in_round //= 2

    for match in bracket:
        if not match["is_bye"]:
            continue
        advancing = match["home_team_id"] or match["away_team_id"]
        if advancing is not None and match["next_match_index"] is not None:
            bracket[match["next_match_index"]][f"{match['next_slot']}_team_id"] = advancing

    return bracket


def arrange_cross_group_seeding(
    qualifiers: list[dict],
    groups: list[str],
    qualifiers_per_group: int,
) -> list[str]:
    """
    Bracket entry order that keeps same-group qualifiers apart in round 1.

    ``qualifiers`` items carry ``team_id``, ``group`` and ``position`` (1-based).
    One qualifier per group: group i winner vs group n-1-i winner.
    Two per group: top half is 1st of group i vs 2nd of group n-1-i, bottom
    half mirrors it with the group order reversed (A1-D2, B1-C2, D1-A2, C1-B2).
    Other values need a generalized seeding that is not implemented.
    """
    if qualifiers_per_group not in (1, 2):
        raise ValidationError(
            f"El cruce de grupos solo admite 1 o 2 clasificados por grupo (se pidió {qualifiers_per_group})."
        )

    seen: dict[str, str] = {}
    for q in qualifiers:
        previous = seen.get(q["team_id"])
        if previous is not None and previous != q["group"]:
            raise ValidationError(f"El equipo {q['team_id']} figura en los grupos {previous} y {q['group']}.")
        seen[q["team_id"]] = q["group"]

    by_slot = {(q["group"], int(q["position"])): q["team_id"] for q in qualifiers}

    def pick(group: str, position: int) -> str:
        team_id = by_slot.get((group, position))
        if team_id is None:
            raise ValidationError(f"Falta el clasificado {position}° del grupo {group}.")
        return team_id

    num_groups = len(groups)
    half = num_groups // 2
    order: list[str] = []

    if qualifiers_per_group == 1:
        for i in range(half):
            order.append(pick(groups[i], 1))
            order.append(pick(groups[num_groups - 1 - i], 1))
        return order

    for i in range(half):
        order.append(pick(groups[i], 1))
        order.append(pick(groups[num_groups - 1 - i], 2))
    for i in range(half):
        order.append(pick(groups[num_groups - 1 - i], 1))
        order.append(pick(groups[i], 2))
    return order
