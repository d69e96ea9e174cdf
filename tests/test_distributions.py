import numpy as np
import pytest

from pyRDDLSim.core.builder import RDDLBuilder, discrete, pvar, random_variable
from pyRDDLSim.core.debug.exception import (
    RDDLInvalidDistributionParameterError,
    RDDLInvalidNumberOfArgumentsError,
    RDDLInvalidObjectError,
    RDDLNonExhaustiveDiscreteError,
    RDDLNotImplementedError,
    RDDLRequirementError,
    RDDLTypeError
)
from pyRDDLSim.core.distributions import RDDLDistributionSampler
from pyRDDLSim.core.engine import build

LABELS = ('poor', 'good', 'excellent')

##################################################################################
# Helper functions
##################################################################################


def sampler(seed=42, tolerance=1e-6):
    return RDDLDistributionSampler(np.random.default_rng(seed), tolerance)


def compile_with_status_cpf(expr, requirements=()):
    '''Compiles a domain with a single enum state fluent whose next value is
    given by expr.'''
    builder = RDDLBuilder()
    for req in requirements:
        builder.add_requirement(req)
    builder.add_enum_type('status', LABELS)
    builder.add_pvariable('health', [], 'state-fluent', 'status', 'good')
    builder.add_cpf("health'", [], expr)
    builder.add_reward(0.0)
    builder.add_horizon(10)
    builder.add_discount(1.0)
    domain = builder.build_domain('dist')
    non_fluents, instance = builder.build_instance('dist', 'dist_inst', 'dist_nf')
    return build(domain, non_fluents, instance)

##################################################################################
# Test definitions
##################################################################################

##################################################################################
# Discrete
##################################################################################


def test_discrete_frequencies():
    '''Empirical frequencies over many draws match the probabilities.'''
    probs = [0.1, 0.5, 0.4]
    rng_sampler = sampler(seed=0)
    draws = [rng_sampler.sample_discrete(LABELS, probs) for _ in range(100000)]
    freqs = [draws.count(label) / len(draws) for label in LABELS]
    np.testing.assert_allclose(freqs, probs, atol=0.01)


def test_discrete_is_reproducible():
    probs = [0.2, 0.3, 0.5]
    first, second = sampler(seed=7), sampler(seed=7)
    draws1 = [first.sample_discrete(LABELS, probs) for _ in range(1000)]
    draws2 = [second.sample_discrete(LABELS, probs) for _ in range(1000)]
    assert draws1 == draws2


def test_discrete_uses_one_draw_in_label_order():
    probs = [0.2, 0.3, 0.5]
    u = np.random.default_rng(3).random()
    expected = LABELS[int(np.searchsorted(np.cumsum(probs), u, side='right'))]
    assert sampler(seed=3).sample_discrete(LABELS, probs) == expected


def test_discrete_zero_probability_never_drawn():
    probs = [0.0, 1.0, 0.0]
    rng_sampler = sampler()
    for _ in range(1000):
        assert rng_sampler.sample_discrete(LABELS, probs) == 'good'


def test_discrete_probabilities_must_sum_to_one():
    with pytest.raises(RDDLInvalidDistributionParameterError):
        sampler().sample_discrete(LABELS, [0.13, 0.5, 0.4])
    with pytest.raises(RDDLInvalidDistributionParameterError):
        sampler().sample_discrete(LABELS, [0.5, 0.6, -0.1])
    with pytest.raises(RDDLInvalidDistributionParameterError):
        sampler().sample_discrete(LABELS, [0.1, 0.5, 0.39])

    # within tolerance, probabilities are used as given
    assert sampler(tolerance=0.05).sample_discrete(LABELS, [0.1, 0.5, 0.41]) in LABELS


def test_discrete_in_cpf():
    compiled = compile_with_status_cpf(
        discrete('status', [('poor', 0.0), ('good', 0.0), ('excellent', 1.0)]))
    driver = compiled.new_trajectory(seed=1)
    assert driver.current_state()['health'] == 'good'
    driver.step()
    assert driver.current_state()['health'] == 'excellent'
    assert compiled.traced.cached_is_stochastic_cpf("health'")


def test_discrete_invalid_sum_in_cpf():
    compiled = compile_with_status_cpf(
        discrete('status', [('poor', 0.13), ('good', 0.5), ('excellent', 0.4)]))
    driver = compiled.new_trajectory(seed=1)
    with pytest.raises(RDDLInvalidDistributionParameterError):
        driver.step()
    assert driver.terminated


def test_discrete_outcomes():
    with pytest.raises(RDDLNonExhaustiveDiscreteError):
        compile_with_status_cpf(discrete('status', [('poor', 0.5), ('good', 0.5)]))
    with pytest.raises(RDDLNonExhaustiveDiscreteError):
        compile_with_status_cpf(discrete(
            'status', [('poor', 0.5), ('poor', 0.0), ('good', 0.5), ('excellent', 0.0)]))
    with pytest.raises(RDDLInvalidObjectError):
        compile_with_status_cpf(discrete(
            'status', [('poor', 0.5), ('good', 0.5), ('excellent', 0.0), ('broken', 0.0)]))
    with pytest.raises(RDDLTypeError):
        compile_with_status_cpf(discrete('level', [('poor', 1.0)]))

##################################################################################
# parametric distributions
##################################################################################


def test_kron_delta_has_zero_variance():
    '''KronDelta returns its argument and consumes no random draw.'''
    rng_sampler = sampler(seed=5)
    for _ in range(100):
        assert rng_sampler.sample('KronDelta', [5]) == 5
        assert rng_sampler.sample('KronDelta', ['good']) == 'good'
    assert rng_sampler.rng.random() == np.random.default_rng(5).random()


def test_kron_delta_rejects_reals():
    with pytest.raises(RDDLTypeError):
        sampler().sample('KronDelta', [0.5])
    assert sampler().sample('DiracDelta', [2]) == 2.0


def test_bernoulli_consumes_one_draw():
    rng_sampler = sampler(seed=11)
    reference = np.random.default_rng(11)
    expected = reference.random() < 0.3
    assert rng_sampler.sample('Bernoulli', [0.3]) == expected
    assert rng_sampler.rng.random() == reference.random()


def test_bernoulli_extremes():
    rng_sampler = sampler()
    for _ in range(100):
        assert rng_sampler.sample('Bernoulli', [1.0]) is True
        assert rng_sampler.sample('Bernoulli', [0.0]) is False


def test_sample_types():
    rng_sampler = sampler()
    assert isinstance(rng_sampler.sample('Normal', [0.0, 1.0]), float)
    assert isinstance(rng_sampler.sample('Poisson', [3.0]), int)
    assert isinstance(rng_sampler.sample('Binomial', [10, 0.5]), int)
    assert isinstance(rng_sampler.sample('Geometric', [0.5]), int)
    value = rng_sampler.sample('Uniform', [1.0, 2.0])
    assert 1.0 <= value <= 2.0
    assert rng_sampler.sample('Normal', [4.0, 0.0]) == 4.0
    assert rng_sampler.sample('Gamma', [2.0, 1.0]) > 0
    assert 0 <= rng_sampler.sample('Beta', [2.0, 2.0]) <= 1
    assert rng_sampler.sample('Exponential', [1.0]) >= 0
    assert rng_sampler.sample('Weibull', [1.5, 2.0]) >= 0


@pytest.mark.parametrize('name, params', [
    ('Bernoulli', [1.2]),
    ('Bernoulli', [-0.1]),
    ('Uniform', [2.0, 1.0]),
    ('Normal', [0.0, -1.0]),
    ('Exponential', [0.0]),
    ('Poisson', [-1.0]),
    ('Gamma', [0.0, 1.0]),
    ('Binomial', [2.5, 0.5]),
    ('Binomial', [3, 1.5]),
    ('Geometric', [0.0]),
    ('Beta', [1.0, 0.0]),
    ('Weibull', [-1.0, 1.0]),
    ('Normal', [float('nan'), 1.0])
])
def test_invalid_parameters(name, params):
    with pytest.raises(RDDLInvalidDistributionParameterError):
        sampler().sample(name, params)


def test_non_numeric_parameters():
    with pytest.raises(RDDLTypeError):
        sampler().sample('Bernoulli', [True])
    with pytest.raises(RDDLTypeError):
        sampler().sample('Normal', ['good', 1.0])


def test_distribution_catalog():
    with pytest.raises(RDDLNotImplementedError):
        compile_with_status_cpf(random_variable('Dirichlet', 1.0))
    with pytest.raises(RDDLInvalidNumberOfArgumentsError):
        compile_with_status_cpf(random_variable('KronDelta', pvar('health'), 1))


def test_cpf_deterministic_requirement():
    compile_with_status_cpf(random_variable('KronDelta', pvar('health')),
                            requirements=['cpf-deterministic', 'multivalued'])
    with pytest.raises(RDDLRequirementError):
        compile_with_status_cpf(
            discrete('status', [('poor', 0.2), ('good', 0.4), ('excellent', 0.4)]),
            requirements=['cpf-deterministic', 'multivalued'])
