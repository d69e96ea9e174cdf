from gymnasium.spaces import Box, Discrete
import numpy as np
import pytest

import pyRDDLSim
from pyRDDLSim.core.constraints import RDDLConstraintPolicy
from pyRDDLSim.core.debug.exception import RDDLTrajectoryTerminatedError
from pyRDDLSim.core.driver import RDDLTooManyConcurrentActions
from pyRDDLSim.core.env import RDDLEnv
from pyRDDLSim.core.engine import build
from pyRDDLSim.core.seeding import (
    MAX_INT_32,
    RDDLTrajectorySeeds,
    fibonacci_seeds
)
from pyRDDLSim.examples.sysadmin import build_sysadmin

##################################################################################
# Helper functions
##################################################################################


def make_env(num_computers=4, observed=False, **kwargs):
    return pyRDDLSim.make(*build_sysadmin(num_computers, observed=observed), **kwargs)

##################################################################################
# Test definitions
##################################################################################


def test_spaces():
    env = make_env(4)
    obs_space, action_space = env.observation_space, env.action_space
    assert set(obs_space.keys()) == \
        {f'{var}___c{i}' for var in ('running', 'quality') for i in range(1, 5)}
    assert obs_space['running___c1'] == Discrete(2)
    assert obs_space['quality___c1'] == Discrete(3)
    assert set(action_space.keys()) == {f'reboot___c{i}' for i in range(1, 5)}
    assert action_space['reboot___c3'] == Discrete(2)


def test_observed_spaces():
    env = make_env(3, observed=True)
    assert set(env.observation_space.keys()) == {'ping___c1', 'ping___c2', 'ping___c3'}
    obs, _ = env.reset(seed=0)
    assert obs == {'ping___c1': None, 'ping___c2': None, 'ping___c3': None}


def test_numeric_spaces():
    env = pyRDDLSim.make(*build_sysadmin(3))
    space = env._rddl_to_gym_bounds({'x': 'real', 'k': 'int'})
    assert isinstance(space['x'], Box) and space['x'].dtype == np.float64
    assert isinstance(space['k'], Box) and space['k'].dtype == np.int32


def test_reset_converts_values():
    env = make_env(4)
    obs, info = env.reset(seed=5)
    assert info == {'seed': 5}
    assert obs['running___c1'] == 1
    assert obs['running___c2'] == 0
    assert obs['quality___c1'] == 1
    assert env.observation_space.contains(
        {name: np.int64(value) for (name, value) in obs.items()})
    assert env.state['quality___c1'] == 'good'


def test_episode_is_truncated_at_horizon():
    env = make_env(4, observed=False)
    env.reset(seed=0)
    for t in range(20):
        obs, reward, terminated, truncated, info = env.step({})
        assert info['timestep'] == t + 1
        assert info['accepted']
        assert not terminated
        assert truncated == (t == 19)
    with pytest.raises(RDDLTrajectoryTerminatedError):
        env.step({})

    # reset starts a new episode
    env.reset()
    env.step({})


def test_gym_actions():
    env = make_env(4)
    env.reset(seed=0)
    obs, reward, _, _, info = env.step({'reboot___c2': np.int64(1)})
    assert obs['running___c2'] == 1
    assert reward == 3 - 0.75
    assert env.total_reward == reward


def test_rejected_step():
    env = make_env(4)
    env.reset(seed=0)
    obs, reward, terminated, truncated, info = env.step(
        {'reboot___c1': 1, 'reboot___c2': 1})
    assert not info['accepted']
    assert isinstance(info['violations'][0], RDDLTooManyConcurrentActions)
    assert reward == 0.0
    assert info['timestep'] == 0
    assert not terminated and not truncated


def test_seeds():
    env = make_env(3, seeds=fibonacci_seeds())
    seeds = [env.reset()[1]['seed'] for _ in range(5)]
    assert seeds == [1, 2, 3, 5, 8]


def test_same_seed_same_episode():
    def episode(env):
        env.reset(seed=17)
        return [env.step({})[0] for _ in range(10)]
    assert episode(make_env(4)) == episode(make_env(4))


def test_env_from_compiled_model():
    compiled = build(*build_sysadmin(4))
    env = RDDLEnv(compiled, constraint_policy=RDDLConstraintPolicy.ABORT)
    assert env.horizon == 20
    assert env.discount == 0.9
    assert env.max_allowed_actions == 1
    assert env.driver.constraint_policy == RDDLConstraintPolicy.ABORT


def test_default_seeds_are_fibonacci():
    env = make_env(3)
    assert [env.reset()[1]['seed'] for _ in range(4)] == [1, 2, 3, 5]


def test_fibonacci_seeds_wrap():
    seeds = fibonacci_seeds()
    values = [next(seeds) for _ in range(100)]
    assert values[:6] == [1, 2, 3, 5, 8, 13]
    assert all(0 <= seed < MAX_INT_32 for seed in values)


def test_spawned_seeds():
    first = [next(RDDLTrajectorySeeds(entropy=7)) for _ in range(2)]
    assert first[0] == first[1]

    seeds = RDDLTrajectorySeeds(entropy=7)
    values = [next(seeds) for _ in range(5)]
    assert values[0] == first[0]
    assert len(set(values)) == 5
    assert all(0 <= seed < MAX_INT_32 for seed in values)
    assert seeds.entropy == 7

    env = make_env(3, seeds=RDDLTrajectorySeeds(entropy=7))
    assert [env.reset()[1]['seed'] for _ in range(5)] == values


def test_explicit_seeds_are_wrapped():
    seeds = RDDLTrajectorySeeds([4, -1, MAX_INT_32 + 2])
    assert list(seeds) == [4, MAX_INT_32 - 1, 2]
