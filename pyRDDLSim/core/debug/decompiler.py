import numpy as np

from pyRDDLSim.core.parser.expr import Expression

AGGREGATION_SYMBOLS = {
    'maximum': 'max',
    'minimum': 'min'
}


class RDDLDecompiler:
    '''Converts AST representation (e.g., Expression) to a string that represents
    the corresponding expression in RDDL.'''

    # ===========================================================================
    # main subroutines
    # ===========================================================================

    def decompile_expr(self, expr: Expression, level: int=0) -> str:
        '''Converts an AST expression to a string representing valid RDDL code.

        :param expr: the expression to convert
        :param level: indentation level
        '''
        return self._decompile(expr, False, level)

    # ===========================================================================
    # helper subroutines
    # ===========================================================================

    def _decompile(self, expr, enclose, level):
        etype, _ = expr.etype
        if etype == 'constant':
            return self._decompile_constant(expr, enclose, level)
        elif etype == 'pvar':
            return self._decompile_pvar(expr, enclose, level)
        elif etype in {'arithmetic', 'relational', 'boolean'}:
            return self._decompile_math(expr, enclose, level)
        elif etype == 'aggregation':
            return self._decompile_aggregation(expr, enclose, level)
        elif etype == 'func':
            return self._decompile_func(expr, enclose, level)
        elif etype == 'control':
            return self._decompile_control(expr, enclose, level)
        elif etype == 'randomvar':
            return self._decompile_random(expr, enclose, level)
        else:
            return ''

    def _symbolic(self, value, params, aggregation):
        value = str(value)
        if params is not None and params:
            if aggregation:
                args = ', '.join(f'{k}: {v}' for (k, v) in params)
                value += f'_{{{args}}}'
            else:
                args = ', '.join(map(str, params))
                value += f'({args})'
        return value

    @staticmethod
    def _value_to_string(value):
        if value is None:
            return 'None'
        elif isinstance(value, float):
            value = np.format_float_positional(value)
            if value.endswith('.'):
                value += '0'
            return value
        else:
            value = str(value)
            if value == 'True':
                value = 'true'
            elif value == 'False':
                value = 'false'
            return value

    def _decompile_constant(self, expr, enclose, level):
        return self._value_to_string(expr.args)

    def _decompile_pvar(self, expr, enclose, level):
        _, name = expr.etype
        _, params = expr.args
        if params is not None:
            params = [(self._decompile(arg, False, 0)
                       if isinstance(arg, Expression)
                       else arg)
                      for arg in params]
        return self._symbolic(name, params, aggregation=False)

    def _decompile_math(self, expr, enclose, level):
        _, op = expr.etype
        args = expr.args
        if len(args) == 1:
            arg, = args
            value = str(op) + self._decompile(arg, True, level)
        else:
            sep = ' ' + str(op) + ' '
            value = sep.join(self._decompile(arg, True, level) for arg in args)

        if enclose:
            value = f'( {value} )'
        return value

    def _decompile_aggregation(self, expr, enclose, level):
        _, op = expr.etype
        op = AGGREGATION_SYMBOLS.get(op, op)
        * pvars, arg = expr.args
        params = [pvar for (_, pvar) in pvars]
        agg = self._symbolic(op, params, aggregation=True)
        decompiled = self._decompile(arg, False, level)
        return f'( {agg} [ {decompiled} ] )'

    def _decompile_func(self, expr, enclose, level):
        _, op = expr.etype
        decompiled = ', '.join(self._decompile(arg, False, level)
                               for arg in expr.args)
        return f'{op}[{decompiled}]'

    def _decompile_control(self, expr, enclose, level):
        _, op = expr.etype
        indent = '\t' * (level + 1)

        if op == 'if':
            pred, if_true, if_false = expr.args
            pred = self._decompile(pred, False, level)
            if_true = self._decompile(if_true, True, level + 1)
            if_false = self._decompile(if_false, True, level + 1)
            value = f'if ({pred})\n{indent}then {if_true}\n{indent}else {if_false}'

        else:  # switch
            pvar, *args = expr.args
            pred = self._decompile(pvar, False, level)
            cases = [''] * len(args)
            for (i, _case) in enumerate(args):
                case_type, value = _case
                if case_type == 'case':
                    literal, arg = value
                    decompiled = self._decompile(arg, False, level + 1)
                    cases[i] = f'case {literal} : {decompiled}'
                else:  # default
                    decompiled = self._decompile(value, False, level + 1)
                    cases[i] = f'default : {decompiled}'
            cases = f',\n{indent}'.join(cases)
            indentm1 = '\t' * level
            value = f'switch({pred}) {{ \n{indent}{cases}\n{indentm1} }}'

        if enclose:
            value = f'( {value} )'
        return value

    def _decompile_random(self, expr, enclose, level):
        _, op = expr.etype

        if op == 'Discrete':
            var, args = expr.args
            cases = [var] + [''] * len(args)
            for (i, (literal, arg)) in enumerate(args):
                decompiled = self._decompile(arg, False, level + 1)
                cases[i + 1] = f'{literal} : {decompiled}'
            indent = '\t' * (level + 1)
            value = f',\n{indent}'.join(cases)

        else:  # Bernoulli, Normal, etc...
            value = ', '.join(self._decompile(arg, False, level)
                              for arg in expr.args)

        return f'{op}({value})'
