import numpy as np
from typing import Sequence, Tuple

from pyRDDLSim.core.debug.exception import print_stack_trace
from pyRDDLSim.core.debug.exception import (
    RDDLInvalidDistributionParameterError,
    RDDLNotImplementedError,
    RDDLTypeError
)
from pyRDDLSim.core.parser.expr import Expression

Value = object


class RDDLDistributionSampler:
    '''Draws samples from the fixed catalog of RDDL distributions, given the
    already evaluated parameters. Every call consumes a fixed number of draws
    from the random generator: none for the deterministic KronDelta and
    DiracDelta, exactly one for all others, so that trajectories are
    reproducible under a seeded generator.
    '''

    # number of parameters of each distribution; Discrete is traced separately
    ARITY = {
        'KronDelta': 1,
        'DiracDelta': 1,
        'Bernoulli': 1,
        'Uniform': 2,
        'Normal': 2,
        'Exponential': 1,
        'Poisson': 1,
        'Gamma': 2,
        'Binomial': 2,
        'Geometric': 1,
        'Beta': 2,
        'Weibull': 2
    }

    DETERMINISTIC = {'KronDelta', 'DiracDelta'}

    def __init__(self, rng: np.random.Generator, tolerance: float=1e-6) -> None:
        '''Creates a new sampler.

        :param rng: the random generator from which all draws are taken
        :param tolerance: maximum absolute deviation from 1 allowed for the
        sum of Discrete probabilities
        '''
        self.rng = rng
        self.tolerance = tolerance

    # ===========================================================================
    # validation
    # ===========================================================================

    @staticmethod
    def _check_number(value, what, expr):
        if isinstance(value, (bool, np.bool_)) \
        or not isinstance(value, (int, float, np.integer, np.floating)):
            raise RDDLTypeError(
                f'{what} must be numeric, got {value!r}.\n' +
                print_stack_trace(expr))
        if np.isnan(value):
            raise RDDLInvalidDistributionParameterError(
                f'{what} must not be NaN.\n' + print_stack_trace(expr))
        return value

    @staticmethod
    def _check_range(value, lb, ub, what, expr):
        RDDLDistributionSampler._check_number(value, what, expr)
        if not (lb <= value <= ub):
            raise RDDLInvalidDistributionParameterError(
                f'{what} must be in the range [{lb}, {ub}], got {value}.\n' +
                print_stack_trace(expr))

    @staticmethod
    def _check_positive(value, strict, what, expr):
        RDDLDistributionSampler._check_number(value, what, expr)
        if (strict and value <= 0) or (not strict and value < 0):
            op = '>' if strict else '>='
            raise RDDLInvalidDistributionParameterError(
                f'{what} must be {op} 0, got {value}.\n' +
                print_stack_trace(expr))

    # ===========================================================================
    # sampling
    # ===========================================================================

    def sample(self, name: str, params: Sequence[Value], expr: Expression=None) -> Value:
        '''Samples from the named distribution with the evaluated parameters.

        :param name: the name of the distribution, e.g. Bernoulli
        :param params: the parameter values, in declared order
        :param expr: the expression being sampled, for error traces
        '''
        if name == 'KronDelta':
            return self._sample_kron_delta(params, expr)
        elif name == 'DiracDelta':
            return self._sample_dirac_delta(params, expr)
        elif name == 'Bernoulli':
            return self._sample_bernoulli(params, expr)
        elif name == 'Uniform':
            return self._sample_uniform(params, expr)
        elif name == 'Normal':
            return self._sample_normal(params, expr)
        elif name == 'Exponential':
            return self._sample_exponential(params, expr)
        elif name == 'Poisson':
            return self._sample_poisson(params, expr)
        elif name == 'Gamma':
            return self._sample_gamma(params, expr)
        elif name == 'Binomial':
            return self._sample_binomial(params, expr)
        elif name == 'Geometric':
            return self._sample_geometric(params, expr)
        elif name == 'Beta':
            return self._sample_beta(params, expr)
        elif name == 'Weibull':
            return self._sample_weibull(params, expr)
        else:
            raise RDDLNotImplementedError(
                f'Distribution {name} is not supported.\n' +
                print_stack_trace(expr))

    def _sample_kron_delta(self, params, expr):
        value, = params
        if isinstance(value, (float, np.floating)):
            raise RDDLTypeError(
                f'KronDelta requires a bool, int or enum value, got {value}; '
                f'use DiracDelta for real values.\n' + print_stack_trace(expr))
        return value

    def _sample_dirac_delta(self, params, expr):
        value, = params
        self._check_number(value, 'DiracDelta value', expr)
        return float(value)

    def _sample_bernoulli(self, params, expr):
        pr, = params
        self._check_range(pr, 0, 1, 'Bernoulli p', expr)
        return bool(self.rng.random() < pr)

    def _sample_uniform(self, params, expr):
        lb, ub = params
        self._check_number(lb, 'Uniform lower bound', expr)
        self._check_number(ub, 'Uniform upper bound', expr)
        if lb > ub:
            raise RDDLInvalidDistributionParameterError(
                f'Uniform bounds do not satisfy {lb} <= {ub}.\n' +
                print_stack_trace(expr))
        return float(self.rng.uniform(low=lb, high=ub))

    def _sample_normal(self, params, expr):
        mean, var = params
        self._check_number(mean, 'Normal mean', expr)
        self._check_positive(var, False, 'Normal variance', expr)
        return float(self.rng.normal(loc=mean, scale=np.sqrt(var)))

    def _sample_exponential(self, params, expr):
        scale, = params
        self._check_positive(scale, True, 'Exponential scale', expr)
        return float(self.rng.exponential(scale=scale))

    def _sample_poisson(self, params, expr):
        rate, = params
        self._check_positive(rate, False, 'Poisson rate', expr)
        return int(self.rng.poisson(lam=rate))

    def _sample_gamma(self, params, expr):
        shape, scale = params
        self._check_positive(shape, True, 'Gamma shape', expr)
        self._check_positive(scale, True, 'Gamma scale', expr)
        return float(self.rng.gamma(shape=shape, scale=scale))

    def _sample_binomial(self, params, expr):
        count, pr = params
        self._check_positive(count, False, 'Binomial count', expr)
        if int(count) != count:
            raise RDDLInvalidDistributionParameterError(
                f'Binomial count must be an integer, got {count}.\n' +
                print_stack_trace(expr))
        self._check_range(pr, 0, 1, 'Binomial p', expr)
        return int(self.rng.binomial(n=int(count), p=pr))

    def _sample_geometric(self, params, expr):
        pr, = params
        self._check_range(pr, 0, 1, 'Geometric p', expr)
        if pr == 0:
            raise RDDLInvalidDistributionParameterError(
                'Geometric p must be > 0.\n' + print_stack_trace(expr))
        return int(self.rng.geometric(p=pr))

    def _sample_beta(self, params, expr):
        shape, rate = params
        self._check_positive(shape, True, 'Beta shape', expr)
        self._check_positive(rate, True, 'Beta rate', expr)
        return float(self.rng.beta(a=shape, b=rate))

    def _sample_weibull(self, params, expr):
        shape, scale = params
        self._check_positive(shape, True, 'Weibull shape', expr)
        self._check_positive(scale, True, 'Weibull scale', expr)
        return float(scale * self.rng.weibull(a=shape))

    def sample_discrete(self, labels: Tuple[str, ...], probs: Sequence[Value],
                        expr: Expression=None) -> str:
        '''Samples a label of an enumerated type by inverse CDF with a single
        uniform draw, walking the labels in declared order. Probabilities are
        never renormalized.

        :param labels: the labels of the enumerated type, in declared order
        :param probs: the probability of each label, in the same order
        :param expr: the expression being sampled, for error traces
        '''
        for (label, pr) in zip(labels, probs):
            self._check_range(pr, 0, 1, f'Discrete probability of @{label}', expr)
        total = float(np.sum(probs))
        if abs(total - 1.0) > self.tolerance:
            raise RDDLInvalidDistributionParameterError(
                f'Discrete probabilities must sum to 1 within {self.tolerance}, '
                f'got {total}.\n' + print_stack_trace(expr))

        u = self.rng.random()
        cdf = np.cumsum(probs)
        for (label, pr, cum) in zip(labels, probs, cdf):
            if pr > 0 and u < cum:
                return label

        # u falls in the rounding gap above the last cumulative value
        return [label for (label, pr) in zip(labels, probs) if pr > 0][-1]
