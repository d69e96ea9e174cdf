# This file is based on thiago pbueno's pyrddl.
# https://github.com/thiagopbueno/pyrddl
# it was adapted and extended for pyRDDLSim

from typing import Optional, Sequence, Set, Tuple, Union

Value = Union[bool, int, float, str]
ExprArg = Union['Expression', Tuple, str]

ARITHMETIC_OPS = ('+', '-', '*', '/')
LOGICAL_OPS = ('^', '&', '|', '~', '=>', '<=>')
RELATIONAL_OPS = ('>=', '<=', '<', '>', '==', '~=')
AGGREGATION_OPS = {
    'sum': 'sum',
    'prod': 'prod',
    'avg': 'avg',
    'max': 'maximum',
    'min': 'minimum',
    'forall': 'forall',
    'exists': 'exists'
}
CONTROL_OPS = ('if', 'switch')


class Expression(object):
    '''Expression class represents a RDDL expression.

    The expression is stored as a nested tuple (tag, payload), where the
    payload layout depends on the tag:

        ('number', 1.0) and ('boolean', True) for constants
        ('pvar_expr', (name, [arg, ...] or None)) for variables, free parameters
        (?x), objects and enum literals (@x)
        (op, (arg1, arg2, ...)) for arithmetic, logical and relational operators
        ('func', (name, (arg1, ...))) for built-in functions
        (aggregation, (('typed_var', (?x, type)), ..., body))
        ('if', (condition, then_expr, else_expr))
        ('switch', (predicate, ('case', (@label, expr)), ..., ('default', expr)))
        ('randomvar', (name, (arg1, ...))) for distributions, where the arguments
        of Discrete are (enum_type, ((@label, prob_expr), ...))

    Note:
        Expressions are built with the functions in pyRDDLSim.core.builder.
    Args:
        expr: Expression object or nested tuple of Expressions.
    '''

    def __init__(self, expr: Union['Expression', Tuple]) -> None:
        self._expr = expr

    def __getitem__(self, i):
        return self._expr[i]

    @property
    def etype(self) -> Tuple[str, str]:
        '''Returns the expression's type.'''
        tag = self._expr[0]
        if tag in ('number', 'boolean'):
            return ('constant', type(self._expr[1]).__name__)
        elif tag == 'pvar_expr':
            return ('pvar', self._expr[1][0])
        elif tag == 'randomvar':
            return ('randomvar', self._expr[1][0])
        elif tag in ARITHMETIC_OPS:
            return ('arithmetic', tag)
        elif tag in LOGICAL_OPS:
            return ('boolean', tag)
        elif tag in RELATIONAL_OPS:
            return ('relational', tag)
        elif tag == 'func':
            return ('func', self._expr[1][0])
        elif tag in AGGREGATION_OPS:
            return ('aggregation', AGGREGATION_OPS[tag])
        elif tag in CONTROL_OPS:
            return ('control', tag)
        else:
            return ('UNKNOWN', 'UNKNOWN')

    @property
    def args(self) -> Union[Value, Sequence[ExprArg]]:
        '''Returns the expression's arguments.'''
        tag = self._expr[0]
        if tag in ('randomvar', 'func'):
            return self._expr[1][1]
        elif tag in ('number', 'boolean', 'pvar_expr') \
        or tag in ARITHMETIC_OPS or tag in LOGICAL_OPS or tag in RELATIONAL_OPS \
        or tag in AGGREGATION_OPS or tag in CONTROL_OPS:
            return self._expr[1]
        else:
            return []

    def is_constant_expression(self) -> bool:
        '''Returns True if constant expression. False, othersize.'''
        return self.etype[0] == 'constant'

    def is_pvariable_expression(self) -> bool:
        '''Returns True if pvariable expression. False, otherwise.'''
        return self.etype[0] == 'pvar'

    @property
    def name(self) -> str:
        '''Returns the name of pvariable.
        Returns:
            Name of pvariable.
        Raises:
            ValueError: If not a pvariable expression.
        '''
        if not self.is_pvariable_expression():
            raise ValueError('Expression is not a pvariable.')
        return self._pvar_to_name(self.args)

    @property
    def value(self):
        '''Returns the value of a constant expression.
        Returns:
            Value of constant.
        Raises:
            ValueError: If not a constant expression.
        '''
        if not self.is_constant_expression():
            raise ValueError('Expression is not a number.')
        return self.args

    def __str__(self) -> str:
        '''Returns string representing the expression.'''
        return self.__expr_str(self, 0)

    @classmethod
    def __expr_str(cls, expr, level):
        ident = ' ' * level * 4
        if not isinstance(expr, Expression):
            return '{}{}'.format(ident, str(expr))

        if expr.etype[0] == 'constant':
            return '{}Expression(etype={}, args={})'.format(ident, expr.etype, expr.args)

        if expr.etype[0] == 'pvar':
            name, params = expr.args
            if not params:
                return '{}Expression(etype={}, args={})'.format(ident, expr.etype, expr.args)
            args = '[' + ', '.join(cls.__expr_str(param, 0) for param in params) + ']'
            args = '({}, {})'.format(name, args)
            return '{}Expression(etype={}, args={})'.format(ident, expr.etype, args)

        args = '\n'.join(cls.__expr_str(arg, level + 1) for arg in expr.args)
        return '{}Expression(etype={}, args=\n{})'.format(ident, expr.etype, args)

    @property
    def scope(self) -> Set[str]:
        '''Returns the set of fluents in the expression's scope, as name/arity.'''
        return self.__get_scope(self._expr)

    @classmethod
    def __get_scope(cls, expr: Union['Expression', Tuple]) -> Set[str]:
        scope = set()
        for (i, atom) in enumerate(expr):
            if isinstance(atom, Expression):
                scope.update(cls.__get_scope(atom._expr))
            elif type(atom) in [tuple, list]:
                scope.update(cls.__get_scope(atom))
            elif atom == 'pvar_expr':
                functor, params = expr[i + 1]
                if not functor.startswith('?') and not functor.startswith('@'):
                    arity = len(params) if params is not None else 0
                    scope.add('{}/{}'.format(functor, arity))
                break
        return scope

    @classmethod
    def _pvar_to_name(cls, pvar_expr):
        functor = pvar_expr[0]
        arity = len(pvar_expr[1]) if pvar_expr[1] is not None else 0
        return '{}/{}'.format(functor, arity)


def typed_vars(expr: Expression) -> Tuple[Tuple[str, str], ...]:
    '''Returns the (parameter, type) pairs bound by an aggregation expression.'''
    *pvars, _ = expr.args
    return tuple(pvar[1] for pvar in pvars)


def switch_cases(expr: Expression) -> Tuple[Expression, Tuple, Optional[Expression]]:
    '''Splits a switch expression into predicate, ((label, expr), ...) cases and
    the default expression (or None).'''
    pred, *cases = expr.args
    labeled, default = [], None
    for (tag, body) in cases:
        if tag == 'case':
            labeled.append(body)
        else:
            default = body
    return pred, tuple(labeled), default
