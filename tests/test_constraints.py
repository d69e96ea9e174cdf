import pytest

from pyRDDLSim.core.builder import (
    RDDLBuilder,
    aggregation,
    arithmetic,
    logical,
    pvar,
    relational
)
from pyRDDLSim.core.constraints import RDDLConstraintPolicy, RDDLConstraintViolation
from pyRDDLSim.core.debug.exception import (
    RDDLActionPreconditionNotSatisfiedError,
    RDDLConstraintNotSatisfiedError,
    RDDLStateInvariantNotSatisfiedError,
    RDDLTrajectoryTerminatedError,
    RDDLTypeError
)
from pyRDDLSim.core.engine import build
from pyRDDLSim.examples.sysadmin import build_sysadmin

##################################################################################
# Helper functions
##################################################################################


def no_reboots():
    return aggregation('forall', [('?c', 'computer')],
                       logical('~', pvar('reboot', ['?c'])))


def compile_sysadmin(constraints=(), preconditions=(), **kwargs):
    '''Compiles SysAdmin with additional state-action constraints and action
    preconditions.'''
    domain, non_fluents, instance = build_sysadmin(4, **kwargs)
    domain.constraints.extend(constraints)
    domain.preconds.extend(preconditions)
    return build(domain, non_fluents, instance)


def compile_counter(horizon=10, limit=3):
    '''A counter incremented every step, terminating once it reaches limit.'''
    builder = RDDLBuilder()
    builder.add_pvariable('n', [], 'state-fluent', 'int', 0)
    builder.add_cpf("n'", [], arithmetic('+', pvar('n'), 1))
    builder.add_reward(1.0)
    builder.add_termination(relational('>=', pvar('n'), limit))
    builder.add_horizon(horizon)
    builder.add_discount(1.0)
    domain = builder.build_domain('counter')
    non_fluents, instance = builder.build_instance('counter', 'counter_inst', 'counter_nf')
    return build(domain, non_fluents, instance)

##################################################################################
# Test definitions
##################################################################################


def test_tautology_never_violated():
    running = pvar('running', ['?c'])
    tautology = aggregation('forall', [('?c', 'computer')],
                            logical('|', running, logical('~', running)))
    compiled = compile_sysadmin(constraints=[tautology])
    driver = compiled.new_trajectory(seed=3, constraint_policy=RDDLConstraintPolicy.RAISE)
    for t in range(20):
        result = driver.step({f'reboot___c{t % 4 + 1}': True})
        assert result.violations == []
    assert driver.terminated
    assert driver.violations == []


def test_constraint_on_step_values():
    '''Constraints can read interm and next-state values of the step.'''
    constraint = relational('==', pvar('num-neighbors', ['c1']), 1)
    rebooted = logical('=>', pvar('reboot', ['c2']), pvar("running'", ['c2']))
    compiled = compile_sysadmin(constraints=[constraint, rebooted])
    driver = compiled.new_trajectory(seed=0, constraint_policy=RDDLConstraintPolicy.RAISE)
    result = driver.step({'reboot___c2': True})
    assert result.violations == []


def test_record_policy():
    compiled = compile_sysadmin(constraints=[no_reboots()])
    driver = compiled.new_trajectory(seed=0)
    result = driver.step({'reboot___c1': True})
    assert len(result.violations) == 1
    violation = result.violations[0]
    assert isinstance(violation, RDDLConstraintViolation)
    assert violation.kind == 'constraint'
    assert violation.index == 0
    assert violation.timestep == 0
    assert violation.fluents == ['reboot/1']
    assert 'State-action constraint 1 is not satisfied at step 0' in violation.message()
    assert isinstance(violation.to_error(), RDDLConstraintNotSatisfiedError)

    # the step is still applied
    assert not result.terminated
    assert driver.timestep == 1
    assert driver.current_state()['running___c1'] is True
    assert driver.violations == [violation]

    result = driver.step()
    assert result.violations == []


def test_abort_policy():
    compiled = compile_sysadmin(constraints=[no_reboots()])
    driver = compiled.new_trajectory(seed=0, constraint_policy=RDDLConstraintPolicy.ABORT)
    result = driver.step({'reboot___c1': True})
    assert result.terminated
    assert driver.timestep == 1
    assert result.reward == driver.total_reward
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step()


def test_raise_policy():
    compiled = compile_sysadmin(constraints=[no_reboots()])
    driver = compiled.new_trajectory(seed=0, constraint_policy='raise')
    with pytest.raises(RDDLConstraintNotSatisfiedError):
        driver.step({'reboot___c1': True})
    assert driver.terminated
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step()

    # a new trajectory starts cleanly
    driver.reset()
    assert not driver.terminated
    assert driver.step().violations == []


def test_preconditions():
    precondition = logical('~', pvar('reboot', ['c1']))
    compiled = compile_sysadmin(preconditions=[precondition])

    driver = compiled.new_trajectory(seed=0)
    result = driver.step({'reboot___c1': True})
    assert [v.kind for v in result.violations] == ['precondition']

    driver = compiled.new_trajectory(seed=0, constraint_policy=RDDLConstraintPolicy.RAISE)
    with pytest.raises(RDDLActionPreconditionNotSatisfiedError):
        driver.step({'reboot___c1': True})


def test_invariant_violated_at_reset():
    compiled = build(*build_sysadmin(4, reboot_prob=1.5))
    driver = compiled.new_trajectory(seed=0)
    assert [v.kind for v in driver.violations] == ['invariant']
    assert driver.violations[0].fluents == ['REBOOT-PROB/0']

    with pytest.raises(RDDLStateInvariantNotSatisfiedError):
        compiled.new_trajectory(seed=0, constraint_policy=RDDLConstraintPolicy.RAISE)


def test_invariant_at_reset_aborts():
    compiled = build(*build_sysadmin(4, reboot_prob=1.5))
    driver = compiled.new_trajectory(seed=0, constraint_policy=RDDLConstraintPolicy.ABORT)
    assert [v.kind for v in driver.violations] == ['invariant']
    assert driver.terminated
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step()
    assert driver.timestep == 0


def test_constraint_must_be_bool():
    compiled = compile_sysadmin(constraints=[pvar('REBOOT-PROB')])
    driver = compiled.new_trajectory(seed=0)
    with pytest.raises(RDDLTypeError):
        driver.step()
    assert driver.terminated


def test_termination():
    compiled = compile_counter(horizon=10, limit=3)
    driver = compiled.new_trajectory(seed=0)
    terminated = [driver.step().terminated for _ in range(3)]
    assert terminated == [False, False, True]
    assert driver.timestep == 3
    assert driver.current_state()['n'] == 3
    assert driver.undiscounted_reward == 3.0
    with pytest.raises(RDDLTrajectoryTerminatedError):
        driver.step()


def test_horizon_before_termination():
    compiled = compile_counter(horizon=2, limit=3)
    driver = compiled.new_trajectory(seed=0)
    assert not driver.step().terminated
    assert driver.step().terminated
    assert driver.current_state()['n'] == 2
