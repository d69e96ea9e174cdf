import gymnasium as gym
from gymnasium.spaces import Box, Dict, Discrete
import numpy as np
from typing import Iterable, Optional

from pyRDDLSim.core.constraints import RDDLConstraintPolicy
from pyRDDLSim.core.debug.exception import (
    RDDLTrajectoryTerminatedError,
    RDDLTypeError
)
from pyRDDLSim.core.engine import RDDLCompiledModel
from pyRDDLSim.core.seeding import RDDLTrajectorySeeds, fibonacci_seeds


class RDDLEnv(gym.Env):
    '''A gym environment class for compiled RDDL domains. Enum values are
    exchanged as label indices and booleans as 0/1, as required by the
    Discrete spaces.'''

    def __init__(self, compiled: RDDLCompiledModel,
                 constraint_policy: RDDLConstraintPolicy=RDDLConstraintPolicy.RECORD,
                 tolerance: float=1e-6,
                 seeds: Optional[Iterable[int]]=None) -> None:
        '''Creates a new gym environment from the given compiled RDDL model.

        :param compiled: the compiled RDDL domain + instance
        :param constraint_policy: what to do when a constraint is violated
        :param tolerance: tolerance on the sum of Discrete probabilities
        :param seeds: the seeds of successive episodes, Fibonacci numbers
        by default
        '''
        super(RDDLEnv, self).__init__()
        self.compiled = compiled
        self.model = compiled.model
        self.horizon = compiled.horizon
        self.discount = compiled.discount
        self.max_allowed_actions = compiled.max_allowed_actions

        self.driver = compiled.new_trajectory(
            constraint_policy=constraint_policy, tolerance=tolerance)

        # construct the gym observation and action spaces
        grounder = compiled.grounder
        observed = self.model.observ_fluents if self.driver.is_pomdp \
            else self.model.state_fluents
        self._observ_ranges = {name: self.model.variable_ranges[var]
                               for var in observed
                               for name in grounder.groundings(var)}
        self._action_ranges = {name: self.model.variable_ranges[var]
                               for var in self.model.action_fluents
                               for name in grounder.groundings(var)}
        self.observation_space = self._rddl_to_gym_bounds(self._observ_ranges)
        self.action_space = self._rddl_to_gym_bounds(self._action_ranges)

        if seeds is None:
            seeds = fibonacci_seeds()
        self.seeds = RDDLTrajectorySeeds(seeds)
        self.trial = 0
        self.done = False

    def _rddl_to_gym_bounds(self, ranges):
        result = Dict()
        for (var, prange) in ranges.items():

            # enumerated values converted to Discrete space
            if prange in self.model.enum_types:
                num_objects = len(self.model.type_to_objects[prange])
                result[var] = Discrete(num_objects)

            # real values define a box
            elif prange == 'real':
                result[var] = Box(-np.inf, np.inf, shape=(), dtype=np.float64)

            # boolean values converted to Discrete space
            elif prange == 'bool':
                result[var] = Discrete(2)

            # integer values define a box bounded by the int32 range
            elif prange == 'int':
                info = np.iinfo(np.int32)
                result[var] = Box(info.min, info.max, shape=(), dtype=np.int32)

            # unknown type
            else:
                raise RDDLTypeError(
                    f'Type <{prange}> of fluent <{var}> is not valid, '
                    f'must be an enumerated or primitive type (real, int, bool).')
        return result

    # ===========================================================================
    # value conversion
    # ===========================================================================

    def _to_gym(self, values, ranges):
        result = {}
        for (var, value) in values.items():
            prange = ranges[var]
            if value is None:
                result[var] = None
            elif prange in self.model.enum_types:
                result[var] = self.model.object_to_index[value]
            elif prange == 'bool':
                result[var] = int(value)
            else:
                result[var] = value
        return result

    def _from_gym(self, actions):
        result = {}
        for (var, value) in actions.items():
            prange = self._action_ranges.get(var, None)
            if prange in self.model.enum_types:
                if not isinstance(value, str):
                    value = self.model.type_to_objects[prange][int(value)]
            elif prange == 'bool':
                value = bool(value)
            elif prange == 'int':
                value = int(value)
            elif prange == 'real':
                value = float(value)
            result[var] = value
        return result

    # ===========================================================================
    # gym interface
    # ===========================================================================

    def step(self, actions):
        if self.done:
            raise RDDLTrajectoryTerminatedError(
                'The step() function has been called even though the '
                'current episode has terminated or truncated: please call reset().')

        result = self.driver.step(self._from_gym(actions))
        obs = self._to_gym(result.observation, self._observ_ranges)

        # the horizon truncates, termination conditions and aborts terminate
        truncated = self.driver.timestep >= self.horizon
        terminated = result.terminated and not truncated
        self.done = result.terminated
        info = {'violations': result.violations,
                'accepted': result.accepted,
                'timestep': self.driver.timestep}
        return obs, result.reward, terminated, truncated, info

    def reset(self, seed=None, options=None):
        super(RDDLEnv, self).reset(seed=seed)

        # update random generator seed
        if seed is None:
            seed = next(self.seeds)
        obs = self.driver.reset(seed=seed)
        self.done = self.driver.terminated
        self.trial += 1
        return self._to_gym(obs, self._observ_ranges), {'seed': seed}

    @property
    def state(self):
        return dict(self.driver.current_state())

    @property
    def total_reward(self) -> float:
        return self.driver.total_reward
