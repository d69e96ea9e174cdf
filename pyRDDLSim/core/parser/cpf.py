# This file is based on thiago pbueno's pyrddl.
# https://github.com/thiagopbueno/pyrddl
# it was adapted and extended for pyRDDLSim

from typing import List, Tuple

from pyRDDLSim.core.parser.expr import Expression

PVarExpr = Tuple[str, Tuple[str, List[str]]]


class CPF(object):
    '''Conditional Probability Function.
    Args:
        pvar: CPF's parameterized variable, as ('pvar_expr', (name, [?x, ...])).
        expr: CPF's expression.
    Attributes:
        pvar (:obj:`PVarExpr`): CPF's parameterized variable.
        expr (:obj:`Expression`): CPF's expression.
    '''

    def __init__(self, pvar: PVarExpr, expr: Expression) -> None:
        self.pvar = pvar
        self.expr = expr

    @property
    def name(self) -> str:
        '''Returns the CPF's pvariable name, including the prime if any.'''
        return self.pvar[1][0]

    @property
    def params(self) -> List[str]:
        '''Returns the CPF's parameter names (e.g. ?x).'''
        params = self.pvar[1][1]
        return list(params) if params is not None else []

    def __repr__(self) -> str:
        '''Returns the CPF's canonical representation.'''
        cpf = '{} =\n{};'.format(str(self.pvar), str(self.expr))
        return cpf
