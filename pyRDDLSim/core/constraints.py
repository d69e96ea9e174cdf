from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from pyRDDLSim.core.debug.exception import print_stack_trace
from pyRDDLSim.core.debug.exception import (
    RDDLActionPreconditionNotSatisfiedError,
    RDDLConstraintNotSatisfiedError,
    RDDLStateInvariantNotSatisfiedError
)
from pyRDDLSim.core.parser.expr import Expression
from pyRDDLSim.core.simulator import RDDLSimulator


class RDDLConstraintPolicy(Enum):
    '''What a trajectory does when a constraint is violated.'''
    RECORD = 'record'  # report the violation and continue
    ABORT = 'abort'  # report the violation and terminate the trajectory
    RAISE = 'raise'  # raise an error


class RDDLConstraintViolation(NamedTuple):
    '''Signals that a constraint evaluated to false at a given timestep.

    kind is one of precondition, constraint or invariant and index is the
    position of the expression in its block.'''
    kind: str
    index: int
    timestep: int
    expr: Expression

    @property
    def fluents(self) -> List[str]:
        '''Returns the fluents read by the violated expression, as name/arity.'''
        return sorted(self.expr.scope)

    def message(self) -> str:
        return (f'{RDDLConstraintChecker.LABELS[self.kind]} {self.index + 1} '
                f'is not satisfied at step {self.timestep}.\n' +
                print_stack_trace(self.expr))

    def to_error(self) -> ValueError:
        error_class = RDDLConstraintChecker.ERRORS[self.kind]
        return error_class(self.message())


class RDDLConstraintChecker:
    '''Evaluates the boolean constraint expressions of a RDDL domain against
    an environment and reports each false result as a violation. The checker
    never modifies the environment.
    '''

    LABELS = {
        'precondition': 'Action precondition',
        'constraint': 'State-action constraint',
        'invariant': 'State invariant',
        'termination': 'Termination'
    }

    ERRORS = {
        'precondition': RDDLActionPreconditionNotSatisfiedError,
        'constraint': RDDLConstraintNotSatisfiedError,
        'invariant': RDDLStateInvariantNotSatisfiedError
    }

    def __init__(self, simulator: RDDLSimulator) -> None:
        '''Creates a new constraint checker.

        :param simulator: the evaluator of the constraint expressions
        '''
        self.sim = simulator
        self.rddl = simulator.rddl

    def _check(self, kind, exprs, subs, timestep):
        violations = []
        for (index, expr) in enumerate(exprs):
            if not self._evaluate(kind, index, expr, subs):
                violations.append(
                    RDDLConstraintViolation(kind, index, timestep, expr))
        return violations

    def _evaluate(self, kind, index, expr, subs):
        value = self.sim.evaluate(expr, subs)
        return RDDLSimulator._check_bool(
            value, f'{RDDLConstraintChecker.LABELS[kind]} {index + 1}', expr)

    def check_preconditions(self, subs: Dict[str, object],
                            timestep: int) -> List[RDDLConstraintViolation]:
        '''Checks the action preconditions on the current state and the
        chosen actions.'''
        return self._check('precondition', self.rddl.preconditions, subs, timestep)

    def check_constraints(self, subs: Dict[str, object],
                          timestep: int) -> List[RDDLConstraintViolation]:
        '''Checks the state-action constraints on the fully resolved step
        environment, including interm and next-state values.'''
        return self._check('constraint', self.rddl.constraints, subs, timestep)

    def check_invariants(self, subs: Dict[str, object],
                         timestep: int) -> List[RDDLConstraintViolation]:
        '''Checks the state invariants on the current state.'''
        return self._check('invariant', self.rddl.invariants, subs, timestep)

    def check_terminations(self, subs: Dict[str, object]) -> Optional[int]:
        '''Returns the index of the first termination condition that holds in
        the current state, or None if no condition holds.'''
        for (index, expr) in enumerate(self.rddl.terminations):
            if self._evaluate('termination', index, expr, subs):
                return index
        return None
