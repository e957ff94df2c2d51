"""
Tournament configuration.

Declares the phase order and the qualification policy of each phase (and,
where needed, of individual rounds). Loaded once from JSON:

    {
        "phases": ["Fase de Grupos", "Fase de semifinales", "Fase de Finales"],
        "group_phase": "Fase de Grupos",
        "phase_policies": {
            "Fase de semifinales": {"type": "top_n", "phase": "Fase de Grupos", "n": 4}
        },
        "round_policies": {
            "Final": {"type": "winners_of", "rounds": ["Semifinal 1", "Semifinal 2"]}
        },
        "dice_sides": 6,
        "data_dir": "data"
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

from tourney.exceptions import ConfigError
from tourney.tournament.qualification import (
    FullRoster,
    QualificationPolicy,
    TopNFromPhase,
    WinnersOf,
    policy_from_dict,
)
from tourney.utils.constants import (
    DEFAULT_PHASES,
    DICE_SIDES,
    FINAL_STAGE,
    GROUP_STAGE,
    SEMIFINAL_STAGE,
)


@dataclass
class TournamentConfig:
    """Configuration for a tournament."""
    phases: List[str] = field(default_factory=lambda: list(DEFAULT_PHASES))
    group_phase: str = GROUP_STAGE
    phase_policies: Dict[str, QualificationPolicy] = field(default_factory=dict)
    round_policies: Dict[str, QualificationPolicy] = field(default_factory=dict)
    dice_sides: int = DICE_SIDES
    data_dir: str = "data"

    def __post_init__(self):
        if self.group_phase not in self.phases:
            raise ConfigError(f"Group phase {self.group_phase!r} is not listed in phases")
        if self.dice_sides < 2:
            raise ConfigError("dice_sides must be at least 2")

    def phase_index(self, phase: str) -> int:
        """Position of a phase; unknown phases sort last."""
        try:
            return self.phases.index(phase)
        except ValueError:
            return len(self.phases)

    @property
    def final_phase(self) -> str:
        return self.phases[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phases': list(self.phases),
            'group_phase': self.group_phase,
            'phase_policies': {k: p.to_dict() for k, p in self.phase_policies.items()},
            'round_policies': {k: p.to_dict() for k, p in self.round_policies.items()},
            'dice_sides': self.dice_sides,
            'data_dir': self.data_dir,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TournamentConfig':
        """
        Build a configuration from its JSON form.

        Raises:
            ConfigError: On malformed policies or phases
        """
        phases = data.get('phases') or list(DEFAULT_PHASES)
        if not isinstance(phases, list) or not all(isinstance(p, str) for p in phases):
            raise ConfigError("phases must be a list of phase names")

        return cls(
            phases=phases,
            group_phase=data.get('group_phase', phases[0]),
            phase_policies={
                k: policy_from_dict(v) for k, v in (data.get('phase_policies') or {}).items()
            },
            round_policies={
                k: policy_from_dict(v) for k, v in (data.get('round_policies') or {}).items()
            },
            dice_sides=int(data.get('dice_sides', DICE_SIDES)),
            data_dir=data.get('data_dir', 'data'),
        )

    @classmethod
    def load(cls, path: str) -> 'TournamentConfig':
        """Load a configuration from a JSON file."""
        config_path = Path(path)
        try:
            with open(config_path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {config_path}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file is not valid JSON: {config_path}: {e}") from e
        return cls.from_dict(data)

    def save(self, path: str):
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)


def default_config(data_dir: str = "data") -> TournamentConfig:
    """
    The tournament format used by the school competition.

    Group stage for every verified team, the best four overall go to the
    semifinals, and the final is played by the two semifinal winners.
    """
    return TournamentConfig(
        phases=list(DEFAULT_PHASES),
        group_phase=GROUP_STAGE,
        phase_policies={
            GROUP_STAGE: FullRoster(),
            SEMIFINAL_STAGE: TopNFromPhase(phase=GROUP_STAGE, n=4),
            FINAL_STAGE: WinnersOf(rounds=("Semifinal 1", "Semifinal 2")),
        },
        data_dir=data_dir,
    )


def load_config(path: Optional[str] = None, data_dir: Optional[str] = None) -> TournamentConfig:
    """Load a config file if given, otherwise the default format."""
    config = TournamentConfig.load(path) if path else default_config()
    if data_dir:
        config.data_dir = data_dir
    return config
