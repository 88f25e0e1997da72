"""Team resolution: ESPN team records + NCAA school records -> ResolvedTeam.

Stages run in a fixed order and each one only sees what the previous stages
left unclaimed:

1. persisted binding table (exact)
2. cross-category inference (safe name match, only for schools known elsewhere)
3. fuzzy name index, greedy by distance
4. finalize into ResolvedTeam records
5. write confirmed pairs back into the binding table
"""

from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple

from loguru import logger

from cfb_reconcile.config.settings import MatchingPolicy
from cfb_reconcile.models.enums import Category, MatchStage
from cfb_reconcile.models.results import TeamResolution
from cfb_reconcile.models.team import EspnTeam, NcaaTeam, ResolvedTeam
from cfb_reconcile.normalization.names import clean_name, format_color, generate_acronym, is_safe_match
from cfb_reconcile.resolution.enrichment import ColorExtractor, TeamEnrichment
from cfb_reconcile.resolution.fuzzy import FuzzyIndex, FuzzyKey, is_ambiguous
from cfb_reconcile.resolution.matchers import Claims
from cfb_reconcile.storage.store import ReconciliationStore
from cfb_reconcile.utils.misc_utils import generate_team_id

_ID_NAMESPACES = {
    Category.FOOTBALL: "cfb",
    Category.BASKETBALL: "cbb",
    Category.BASKETBALL_W: "cbbw",
    Category.SOCCER: "csoc",
    Category.SOCCER_W: "csocw",
}


class TeamPair(NamedTuple):
    espn: EspnTeam
    ncaa: NcaaTeam
    stage: MatchStage


class CrossCategoryIndex:
    """School-identifying keys of ESPN teams already bound in *other* categories."""

    def __init__(self):
        self._keys: Set[str] = set()
        self._espn_ids: Set[str] = set()

    @staticmethod
    def keys_for(team: EspnTeam) -> List[str]:
        keys = [clean_name(team.location), clean_name(team.display_name)]
        return [k for k in dict.fromkeys(keys) if len(k) >= 3]

    @classmethod
    def build(
        cls,
        category: Category,
        store: ReconciliationStore,
        espn_teams_by_category: Mapping[Category, Sequence[EspnTeam]],
    ) -> "CrossCategoryIndex":
        index = cls()
        for other, teams in espn_teams_by_category.items():
            if other == category:
                continue
            by_id = {t.id: t for t in teams}
            for espn_id in store.bindings_for(other).values():
                team = by_id.get(espn_id)
                if team is None:
                    continue
                index._espn_ids.add(espn_id)
                index._keys.update(cls.keys_for(team))
        logger.debug(f"Cross-category index for {category.value}: {len(index._keys)} school keys")
        return index

    def __len__(self) -> int:
        return len(self._keys)

    def knows(self, team: EspnTeam) -> bool:
        if team.id in self._espn_ids:
            return True
        return any(key in self._keys for key in self.keys_for(team))


class TeamResolver:
    def __init__(
        self,
        category: Category,
        store: ReconciliationStore,
        policy: MatchingPolicy,
        cross_category: Optional[CrossCategoryIndex] = None,
        color_extractor: Optional[ColorExtractor] = None,
        enrichment: Optional[TeamEnrichment] = None,
    ):
        self.category = category
        self.store = store
        self.policy = policy
        self.cross_category = cross_category
        self.color_extractor = color_extractor
        self.enrichment = enrichment

    # --- input preparation ---

    def _prepare_espn(self, teams: Sequence[EspnTeam]) -> List[EspnTeam]:
        unique: Dict[str, EspnTeam] = {}
        for team in teams:
            unique.setdefault(team.id, team)
        return sorted(unique.values(), key=lambda t: t.id)

    def _prepare_ncaa(self, teams: Sequence[NcaaTeam]) -> Tuple[List[NcaaTeam], List[NcaaTeam]]:
        """Canonical ids, one record per id. Records with no id cannot be matched."""
        unique: Dict[str, NcaaTeam] = {}
        without_id: List[NcaaTeam] = []
        for team in teams:
            if not team.ncaa_id:
                without_id.append(team)
                continue
            canonical = self.store.resolve(self.category, team.ncaa_id)
            if canonical in unique and canonical != team.ncaa_id:
                continue
            unique[canonical] = team.model_copy(update={"ncaa_id": canonical})
        return sorted(unique.values(), key=lambda t: t.ncaa_id), without_id

    # --- stages ---

    def _binding_pass(self, espn: List[EspnTeam], ncaa: List[NcaaTeam], claims: Claims) -> List[TeamPair]:
        bindings = self.store.bindings_for(self.category)
        espn_by_id = {t.id: t for t in espn}
        pairs = []
        for team in ncaa:
            espn_id = bindings.get(team.ncaa_id)
            espn_team = espn_by_id.get(espn_id) if espn_id else None
            if espn_team and claims.claim(espn_team.id, team.ncaa_id):
                pairs.append(TeamPair(espn_team, team, MatchStage.BINDING))
        logger.info(f"[{self.category.value}] Binding pass: {len(pairs)} teams")
        return pairs

    def _names_match(self, espn_team: EspnTeam, ncaa_team: NcaaTeam) -> bool:
        overlap = self.policy.safe_match_overlap
        return any(
            is_safe_match(a, b, overlap) for a in espn_team.search_names for b in ncaa_team.search_names
        )

    def _cross_category_pass(
        self, espn: List[EspnTeam], ncaa: List[NcaaTeam], claims: Claims
    ) -> Tuple[List[TeamPair], int]:
        if not self.cross_category:
            return [], 0
        open_ncaa = [t for t in ncaa if claims.is_free(None, t.ncaa_id)]
        candidates: Dict[str, List[NcaaTeam]] = {}
        claimants: Dict[str, int] = {}
        for team in espn:
            if not claims.is_free(team.id, None) or not self.cross_category.knows(team):
                continue
            hits = [n for n in open_ncaa if self._names_match(team, n)]
            candidates[team.id] = hits
            for hit in hits:
                claimants[hit.ncaa_id] = claimants.get(hit.ncaa_id, 0) + 1

        pairs, ambiguous = [], 0
        espn_by_id = {t.id: t for t in espn}
        for espn_id, hits in candidates.items():
            if not hits:
                continue
            if len(hits) > 1 or claimants[hits[0].ncaa_id] > 1:
                ambiguous += 1
                continue
            if claims.claim(espn_id, hits[0].ncaa_id):
                pairs.append(TeamPair(espn_by_id[espn_id], hits[0], MatchStage.CROSS_CATEGORY))
        logger.info(f"[{self.category.value}] Cross-category pass: {len(pairs)} teams, {ambiguous} ambiguous")
        return pairs, ambiguous

    def _fuzzy_pass(self, espn: List[EspnTeam], ncaa: List[NcaaTeam], claims: Claims) -> Tuple[List[TeamPair], int]:
        open_ncaa = [t for t in ncaa if claims.is_free(None, t.ncaa_id)]
        open_espn = [t for t in espn if claims.is_free(t.id, None)]
        if not open_ncaa or not open_espn:
            return [], 0
        index = FuzzyIndex(
            open_ncaa,
            [
                FuzzyKey("name", lambda t: clean_name(t.school_name), self.policy.fuzzy_name_weight),
                FuzzyKey("acronym", lambda t: generate_acronym(t.school_name), self.policy.fuzzy_acronym_weight),
            ],
        )
        proposals = []
        ambiguous = 0
        for team in open_espn:
            hits = index.best([clean_name(n) for n in team.search_names], self.policy.fuzzy_max_distance)
            if not hits:
                continue
            if is_ambiguous(hits):
                ambiguous += 1
                continue
            proposals.append((hits[0].distance, team.id, hits[0].index, team))

        pairs = []
        for distance, espn_id, ncaa_index, team in sorted(proposals, key=lambda p: p[:3]):
            ncaa_team = open_ncaa[ncaa_index]
            if claims.claim(espn_id, ncaa_team.ncaa_id):
                logger.debug(
                    f"Fuzzy matched '{team.display_name}' -> '{ncaa_team.school_name}' ({distance:.3f})"
                )
                pairs.append(TeamPair(team, ncaa_team, MatchStage.FUZZY))
        logger.info(f"[{self.category.value}] Fuzzy pass: {len(pairs)} teams, {ambiguous} ambiguous")
        return pairs, ambiguous

    # --- finalize ---

    def _colors(self, espn_team: Optional[EspnTeam], logo: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        primary = format_color(espn_team.color) if espn_team else None
        secondary = format_color(espn_team.alternate_color) if espn_team else None
        if (primary is None or secondary is None) and self.color_extractor and logo:
            extracted = [format_color(c) for c in self.color_extractor.extract(logo) or []]
            extracted = [c for c in extracted if c]
            # Only the unset slots are filled, in extractor order
            if primary is None and extracted:
                primary = extracted.pop(0)
            if secondary is None:
                secondary = next((c for c in extracted if c != primary), None)
        return primary, secondary

    def build_team(self, espn_team: EspnTeam, ncaa_team: Optional[NcaaTeam], stage: MatchStage) -> ResolvedTeam:
        logo = (ncaa_team.img_src if ncaa_team else None) or espn_team.logo
        primary, secondary = self._colors(espn_team, logo)
        university = None
        if ncaa_team:
            university = ncaa_team.name_ncaa or ncaa_team.school_name
        team = ResolvedTeam(
            id=generate_team_id(espn_team.id, espn_team.abbreviation, _ID_NAMESPACES[self.category]),
            category=self.category,
            espn_id=espn_team.id,
            ncaa_id=ncaa_team.ncaa_id if ncaa_team else None,
            slug=espn_team.slug,
            abv=espn_team.abbreviation,
            full_name=espn_team.display_name,
            short_name=espn_team.name or espn_team.short_display_name,
            university=university or espn_team.location,
            division=ncaa_team.division if ncaa_team else None,
            conference=ncaa_team.conference if ncaa_team else None,
            primary=primary,
            secondary=secondary,
            logo=logo,
            school_url=ncaa_team.school_url if ncaa_team else None,
            website=ncaa_team.website if ncaa_team else None,
            twitter=ncaa_team.twitter if ncaa_team else None,
            match_stage=stage,
        )
        return self.enrichment.apply(team) if self.enrichment else team

    # --- entry point ---

    def resolve(
        self, espn_teams: Sequence[EspnTeam], ncaa_teams: Sequence[NcaaTeam], write_back: bool = True
    ) -> TeamResolution:
        espn = self._prepare_espn(espn_teams)
        ncaa, ncaa_without_id = self._prepare_ncaa(ncaa_teams)
        logger.info(
            f"[{self.category.value}] Resolving {len(espn)} ESPN teams against {len(ncaa)} NCAA teams "
            f"({len(ncaa_without_id)} NCAA records without an id)"
        )
        if not espn:
            logger.warning(f"[{self.category.value}] No ESPN teams; every NCAA record stays unmatched")

        claims = Claims()
        pairs = self._binding_pass(espn, ncaa, claims)
        cross_pairs, cross_ambiguous = self._cross_category_pass(espn, ncaa, claims)
        fuzzy_pairs, fuzzy_ambiguous = self._fuzzy_pass(espn, ncaa, claims)
        pairs += cross_pairs + fuzzy_pairs

        resolved = [self.build_team(p.espn, p.ncaa, p.stage) for p in pairs]
        unmatched_espn = [t for t in espn if claims.is_free(t.id, None)]
        unmatched_ncaa = [t for t in ncaa if claims.is_free(None, t.ncaa_id)] + ncaa_without_id
        if self.policy.include_unbound_teams:
            resolved += [self.build_team(t, None, MatchStage.UNBOUND) for t in unmatched_espn]

        new_bindings: Dict[str, str] = {}
        for pair in cross_pairs + fuzzy_pairs:
            new_bindings[pair.ncaa.ncaa_id] = pair.espn.id
            if write_back:
                self.store.bind(self.category, pair.ncaa.ncaa_id, pair.espn.id)

        result = TeamResolution(
            category=self.category,
            resolved=sorted(resolved, key=lambda t: t.id),
            unmatched_espn=unmatched_espn,
            unmatched_ncaa=unmatched_ncaa,
            new_bindings=new_bindings,
            ambiguous=cross_ambiguous + fuzzy_ambiguous,
        )
        logger.success(
            f"[{self.category.value}] Team resolution: {len(pairs)} bound, {len(new_bindings)} new bindings, "
            f"{len(unmatched_espn)} ESPN / {len(unmatched_ncaa)} NCAA unmatched"
        )
        return result
