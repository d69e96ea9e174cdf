import pytest

from pyRDDLSim.core.builder import RDDLBuilder, arithmetic, pvar
from pyRDDLSim.core.debug.exception import (
    RDDLDivisionByZeroError,
    RDDLInvalidActionError,
    RDDLTrajectoryTerminatedError,
    RDDLTypeError
)
from pyRDDLSim.core.debug.logger import Logger
from pyRDDLSim.core.driver import RDDLTooManyConcurrentActions
from pyRDDLSim.core.engine import build
from pyRDDLSim.examples.sysadmin import build_sysadmin

##################################################################################
# Helper functions
##################################################################################


def compile_countdown(start=2, horizon=5, discount=1.0):
    '''A countdown n' = n - 1 whose reward 1 / n fails once n reaches 0.'''
    builder = RDDLBuilder()
    builder.add_pvariable('n', [], 'state-fluent', 'int', start)
    builder.add_pvariable('skip', [], 'action-fluent', 'bool', False)
    builder.add_cpf("n'", [], arithmetic('-', pvar('n'), 1))
    builder.add_reward(arithmetic('/', 1, pvar('n')))
    builder.add_horizon(horizon)
    builder.add_discount(discount)
    domain = builder.build_domain('countdown')
    non_fluents, instance = builder.build_instance(
        'countdown', 'countdown_inst', 'countdown_nf')
    return build(domain, non_fluents, instance)


def run(driver, actions):
    states = []
    for action in actions:
        driver.step(action)
        states.append(dict(driver.current_state()))
    return states

##################################################################################
# Test definitions
##################################################################################


def test_sysadmin_trajectory():
    '''Twenty steps of SysAdmin with no reboots end at the horizon with a
    return bounded by the number of computers.'''
    compiled = build(*build_sysadmin(8))
    driver = compiled.new_trajectory(seed=42)
    for t in range(20):
        obs, reward, terminated, violations = driver.step({})
        assert 0.0 <= reward <= 8.0
        assert terminated == (t == 19)
        assert violations == []
        assert set(obs.keys()) == set(driver.current_state().keys())
    assert driver.timestep == 20
    bound = sum(8.0 * 0.9 ** t for t in range(20))
    assert 0.0 <= driver.total_reward <= bound
    assert driver.total_reward <= driver.undiscounted_reward
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step({})


def test_initial_reward_counts_running_computers():
    compiled = build(*build_sysadmin(8))
    driver = compiled.new_trajectory(seed=0)
    result = driver.step({'reboot___c2': True})
    assert result.reward == 7 - 0.75
    assert driver.current_state()['running___c2'] is True


def test_too_many_concurrent_actions():
    compiled = build(*build_sysadmin(8, max_nondef_actions=1))
    driver = compiled.new_trajectory(seed=0)
    before = dict(driver.current_state())
    result = driver.step({'reboot___c1': True, 'reboot___c2': True})
    assert not result.accepted
    assert result.reward == 0.0
    assert not result.terminated
    signal, = result.violations
    assert isinstance(signal, RDDLTooManyConcurrentActions)
    assert signal.count == 2
    assert signal.max_allowed == 1
    assert signal.actions == ('reboot___c1', 'reboot___c2')

    # nothing was mutated
    assert dict(driver.current_state()) == before
    assert driver.timestep == 0
    assert driver.total_reward == 0.0

    # default-valued actions do not count
    result = driver.step({'reboot___c1': True, 'reboot___c2': False})
    assert result.accepted
    assert driver.timestep == 1


def test_concurrent_actions():
    compiled = build(*build_sysadmin(4, max_nondef_actions='pos-inf'))
    driver = compiled.new_trajectory(seed=0)
    result = driver.step({f'reboot___c{i}': True for i in range(1, 5)})
    assert result.accepted
    assert all(driver.current_state()[f'running___c{i}'] for i in range(1, 5))


def test_same_seed_same_trajectory():
    compiled = build(*build_sysadmin(8))
    actions = [{}, {'reboot___c2': True}, {}, {'reboot___c5': True}] * 5
    first = run(compiled.new_trajectory(seed=123), actions)
    second = run(compiled.new_trajectory(seed=123), actions)
    assert first == second

    driver = compiled.new_trajectory(seed=1)
    run(driver, actions[:7])
    driver.reset(seed=123)
    assert run(driver, actions) == first


def test_trajectories_are_independent():
    compiled = build(*build_sysadmin(4))
    first = compiled.new_trajectory(seed=0)
    second = compiled.new_trajectory(seed=0)
    first.step({'reboot___c2': True})
    assert second.timestep == 0
    assert second.current_state()['running___c2'] is False
    assert compiled.init_values['running___c2'] is False


def test_current_state_is_read_only():
    compiled = build(*build_sysadmin(4))
    driver = compiled.new_trajectory(seed=0)
    state = driver.current_state()
    with pytest.raises(TypeError):
        state['running___c1'] = False
    assert set(state.keys()) == \
        {f'{var}___c{i}' for var in ('running', 'quality') for i in range(1, 5)}


def test_invalid_actions():
    compiled = build(*build_sysadmin(4))
    driver = compiled.new_trajectory(seed=0)
    with pytest.raises(RDDLInvalidActionError):
        driver.step({'reboot___c9': True})
    with pytest.raises(RDDLInvalidActionError):
        driver.step({'running___c1': True})
    with pytest.raises(RDDLTypeError):
        driver.step({'reboot___c1': 0.5})


def test_horizon_zero():
    compiled = build(*build_sysadmin(4, horizon=0))
    driver = compiled.new_trajectory(seed=0)
    assert driver.terminated
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step({})


def test_discounted_return():
    compiled = compile_countdown(start=4, horizon=3, discount=0.5)
    driver = compiled.new_trajectory(seed=0)
    rewards = [driver.step().reward for _ in range(3)]
    assert rewards == [0.25, 1 / 3, 0.5]
    assert driver.undiscounted_reward == sum(rewards)
    assert driver.total_reward == 0.25 + 0.5 / 3 + 0.25 * 0.5


def test_runtime_error_terminates():
    compiled = compile_countdown(start=2, horizon=5)
    driver = compiled.new_trajectory(seed=0)
    assert driver.step().reward == 0.5
    assert driver.step().reward == 1.0
    with pytest.raises(RDDLDivisionByZeroError):
        driver.step()
    assert driver.terminated
    assert driver.current_state()['n'] == 0
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step()


def test_partially_observed():
    compiled = build(*build_sysadmin(4, observed=True))
    driver = compiled.new_trajectory(seed=0)
    assert driver.is_pomdp
    obs = driver.reset()
    assert obs == {f'ping___c{i}': None for i in range(1, 5)}
    obs, _, _, _ = driver.step({'reboot___c2': True})
    assert set(obs.keys()) == {f'ping___c{i}' for i in range(1, 5)}
    assert all(isinstance(value, bool) for value in obs.values())

    obs, _, _, _ = driver.step({'reboot___c1': True, 'reboot___c2': True})
    assert obs == {f'ping___c{i}': None for i in range(1, 5)}


def test_log_steps(tmp_path):
    filename = str(tmp_path / 'steps.log')
    compiled = build(*build_sysadmin(3), logger=Logger(filename))
    driver = compiled.new_trajectory(seed=0)
    driver.step({'reboot___c2': True})
    with open(filename) as fp:
        text = fp.read()
    assert "step 0: actions={'reboot___c2': True}" in text
