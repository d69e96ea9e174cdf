import numpy as np
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple, Union, TYPE_CHECKING

from pyRDDLSim.core.constraints import (
    RDDLConstraintChecker,
    RDDLConstraintPolicy,
    RDDLConstraintViolation
)
from pyRDDLSim.core.debug.exception import (
    RDDLInvalidActionError,
    RDDLTrajectoryTerminatedError
)
from pyRDDLSim.core.debug.logger import Logger
from pyRDDLSim.core.distributions import RDDLDistributionSampler
from pyRDDLSim.core.simulator import RDDLSimulator

if TYPE_CHECKING:
    from pyRDDLSim.core.engine import RDDLCompiledModel

Args = Dict[str, Union[bool, int, float, str]]


class RDDLTooManyConcurrentActions(NamedTuple):
    '''Signals that a step was rejected because more actions differ from their
    default value than max-nondef-actions allows.'''
    count: int
    max_allowed: int
    timestep: int
    actions: Tuple[str, ...]


Signal = Union[RDDLConstraintViolation, RDDLTooManyConcurrentActions]


class RDDLStepResult(NamedTuple):
    '''The outcome of one step: unpacks as (observation, reward, terminated,
    violations).'''
    observation: Args
    reward: float
    terminated: bool
    violations: List[Signal]

    @property
    def accepted(self) -> bool:
        '''Whether the actions were applied; False if the step was rejected
        for too many concurrent actions.'''
        return not any(isinstance(signal, RDDLTooManyConcurrentActions)
                       for signal in self.violations)


class RDDLSimulationDriver:
    '''Simulates one trajectory of a compiled RDDL model, one step at a time.
    A driver owns its environment and random generator, so that drivers of
    the same compiled model are independent.
    '''

    def __init__(self, compiled: 'RDDLCompiledModel',
                 seed: Optional[int]=None,
                 constraint_policy: RDDLConstraintPolicy=RDDLConstraintPolicy.RECORD,
                 tolerance: float=1e-6,
                 logger: Optional[Logger]=None) -> None:
        '''Creates a new driver and resets it to the initial state.

        :param compiled: the compiled RDDL model to simulate
        :param seed: seed of the random generator
        :param constraint_policy: what to do when a constraint is violated
        :param tolerance: tolerance on the sum of Discrete probabilities
        :param logger: to log each transition to file
        '''
        self.compiled = compiled
        self.rddl = compiled.model
        self.constraint_policy = RDDLConstraintPolicy(constraint_policy)
        self.logger = logger

        self.sampler = RDDLDistributionSampler(np.random.default_rng(seed), tolerance)
        self.sim = RDDLSimulator(compiled.model, compiled.traced, compiled.plan,
                                 compiled.initializer, self.sampler)
        self.checker = RDDLConstraintChecker(self.sim)

        # ground variables of each kind
        grounder = compiled.grounder
        self.state_names = [name for var in self.rddl.state_fluents
                            for name in grounder.groundings(var)]
        self.next_state_names = {
            name: grounder.groundings(self.rddl.next_state[var])[i]
            for var in self.rddl.state_fluents
            for (i, name) in enumerate(grounder.groundings(var))}
        self.observ_names = [name for var in self.rddl.observ_fluents
                             for name in grounder.groundings(var)]

        self.reset()

    # ===========================================================================
    # properties
    # ===========================================================================

    @property
    def timestep(self) -> int:
        return self._timestep

    @property
    def total_reward(self) -> float:
        '''The discounted return accumulated so far.'''
        return self._total_reward

    @property
    def undiscounted_reward(self) -> float:
        return self._undiscounted_reward

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def is_pomdp(self) -> bool:
        return self.rddl.is_pomdp

    @property
    def violations(self) -> List[Signal]:
        '''All signals reported since the last reset.'''
        return list(self._violations)

    def current_state(self) -> Mapping[str, object]:
        '''Returns a read-only snapshot of the current state.'''
        return MappingProxyType({name: self.subs[name]
                                 for name in self.state_names})

    # ===========================================================================
    # simulation
    # ===========================================================================

    def reset(self, seed: Optional[int]=None) -> Args:
        '''Starts a new trajectory from the initial state and returns the
        initial observation: the state for fully observed domains, or None for
        every observation in partially observed domains.

        :param seed: reseeds the random generator if given
        '''
        if seed is not None:
            self.sampler.rng = np.random.default_rng(seed)

        self.subs = dict(self.compiled.init_values)
        self._timestep = 0
        self._total_reward = 0.0
        self._undiscounted_reward = 0.0
        self._violations = []
        self._terminated = self.rddl.horizon == 0

        violations = self.checker.check_invariants(self.subs, 0)
        self._handle_violations(violations)
        if violations and self.constraint_policy == RDDLConstraintPolicy.ABORT:
            self._terminated = True
        if self.is_pomdp:
            return {name: None for name in self.observ_names}
        return dict(self.current_state())

    def step(self, actions: Optional[Args]=None) -> RDDLStepResult:
        '''Applies the given actions and advances the trajectory by one step.
        Actions are given by grounded name; all other actions keep their
        default value.

        :param actions: the values of the actions to apply
        '''
        if self._terminated:
            raise RDDLTrajectoryTerminatedError(
                f'Trajectory terminated at step {self._timestep}, '
                f'call reset() to start a new one.')
        actions = self._prepare_actions(actions or {})
        t = self._timestep

        # reject actions exceeding max-nondef-actions without any mutation
        noop = self.compiled.noop_actions
        non_default = tuple(name for (name, value) in actions.items()
                            if value != noop[name])
        if len(non_default) > self.rddl.max_allowed_actions:
            signal = RDDLTooManyConcurrentActions(
                len(non_default), self.rddl.max_allowed_actions, t, non_default)
            self._violations.append(signal)
            if self.logger is not None:
                self.logger.log(f'[warn] step {t}: rejected {len(non_default)} '
                                f'non-default actions {non_default}.')
            return RDDLStepResult(self._observation(None), 0.0, False, [signal])

        try:
            result = self._transition(actions, t)
        except Exception:
            self._terminated = True
            raise
        return result

    def _transition(self, actions, t):
        rddl = self.rddl

        # resolve the step environment in stratified order
        subs = dict(self.subs)
        subs.update(actions)
        violations = self.checker.check_preconditions(subs, t)
        self._handle_violations(violations)
        self.sim.sample_cpfs(subs)
        reward = RDDLSimulator._check_numeric(
            self.sim.evaluate(rddl.reward, subs), 'Reward', rddl.reward)
        reward = float(reward)
        constraint_violations = self.checker.check_constraints(subs, t)
        self._handle_violations(constraint_violations)
        violations.extend(constraint_violations)

        self._total_reward += (rddl.discount ** t) * reward
        self._undiscounted_reward += reward

        # advance the state
        for (name, next_name) in self.next_state_names.items():
            self.subs[name] = subs[next_name]
        self._timestep = t + 1

        invariant_violations = self.checker.check_invariants(self.subs, t + 1)
        self._handle_violations(invariant_violations)
        violations.extend(invariant_violations)

        terminal = self.checker.check_terminations(self.subs)
        aborted = bool(violations) \
            and self.constraint_policy == RDDLConstraintPolicy.ABORT
        self._terminated = self._timestep >= rddl.horizon \
            or terminal is not None or aborted

        if self.logger is not None:
            changed = {name: value for (name, value) in actions.items()
                       if value != self.compiled.noop_actions[name]}
            self.logger.log(f'[info] step {t}: actions={changed}, '
                            f'reward={reward}, violations={len(violations)}, '
                            f'terminated={self._terminated}')

        return RDDLStepResult(self._observation(subs), reward,
                              self._terminated, violations)

    def _handle_violations(self, violations):
        self._violations.extend(violations)
        if violations and self.constraint_policy == RDDLConstraintPolicy.RAISE:
            self._terminated = True
            raise violations[0].to_error()

    def _observation(self, subs):
        if self.is_pomdp:
            if subs is None:
                return {name: None for name in self.observ_names}
            return {name: subs[name] for name in self.observ_names}
        return dict(self.current_state())

    def _prepare_actions(self, actions):
        noop = self.compiled.noop_actions
        cast = self.compiled.initializer.cast
        prepared = dict(noop)
        for (name, value) in actions.items():
            if name not in noop:
                raise RDDLInvalidActionError(
                    f'<{name}> is not a valid action, must be one of '
                    f'{set(noop.keys())}.')
            var, _ = self.compiled.grounder.parse(name)
            prepared[name] = cast(value, self.rddl.variable_ranges[var], name)
        return prepared
