import pytest

from pyRDDLSim.core.builder import RDDLBuilder, arithmetic, pvar
from pyRDDLSim.core.compiler.model import RDDLPlanningModel
from pyRDDLSim.core.debug.exception import (
    RDDLInstanceNotExistError,
    RDDLInvalidDependencyInCPFError,
    RDDLInvalidNumberOfArgumentsError,
    RDDLInvalidObjectError,
    RDDLMissingCPFDefinitionError,
    RDDLRepeatedVariableError,
    RDDLRequirementError,
    RDDLTypeError,
    RDDLUndeclaredGroundVariableError,
    RDDLUndefinedCPFError,
    RDDLUndefinedVariableError,
    RDDLValueOutOfRangeError
)
from pyRDDLSim.core.engine import build
from pyRDDLSim.core.parser.pvariable import PVariable
from pyRDDLSim.examples.sysadmin import build_sysadmin

##################################################################################
# Helper functions
##################################################################################


def small_builder():
    '''A minimal valid domain: one counter per computer and a mode flag.'''
    builder = RDDLBuilder()
    builder.add_object_type('computer')
    builder.add_enum_type('level', ['low', 'high'])
    builder.add_pvariable('SPEED', ['computer'], 'non-fluent', 'int', 1)
    builder.add_pvariable('count', ['computer'], 'state-fluent', 'int', 0)
    builder.add_pvariable('mode', [], 'state-fluent', 'level', 'low')
    builder.add_pvariable('push', ['computer'], 'action-fluent', 'bool', False)
    builder.add_cpf("count'", ['?c'], arithmetic(
        '+', pvar('count', ['?c']), pvar('SPEED', ['?c'])))
    builder.add_cpf("mode'", [], pvar('mode'))
    builder.add_reward(0.0)
    builder.add_object_values('computer', ['c1', 'c2'])
    builder.add_horizon(5)
    builder.add_discount(1.0)
    return builder


def compile_builder(builder):
    domain = builder.build_domain('small')
    non_fluents, instance = builder.build_instance('small', 'small_inst', 'small_nf')
    return build(domain, non_fluents, instance)

##################################################################################
# Test definitions
##################################################################################


def test_grounded_names():
    assert RDDLPlanningModel.ground_var('CONNECTED', ['c1', 'c2']) == 'CONNECTED___c1__c2'
    assert RDDLPlanningModel.ground_var("running'", ['c1']) == "running___c1'"
    assert RDDLPlanningModel.ground_var('REBOOT-PROB', []) == 'REBOOT-PROB'
    assert RDDLPlanningModel.parse_grounded('CONNECTED___c1__c2') == ('CONNECTED', ['c1', 'c2'])
    assert RDDLPlanningModel.parse_grounded("running___c3'") == ("running'", ['c3'])


def test_groundings_follow_declared_order():
    '''Groundings enumerate the Cartesian product with the last parameter
    varying fastest.'''
    compiled = build(*build_sysadmin(4))
    grounder = compiled.grounder
    assert grounder.groundings('running') == [f'running___c{i}' for i in range(1, 5)]
    connected = grounder.groundings('CONNECTED')
    assert len(connected) == 16
    assert connected[:3] == ['CONNECTED___c1__c1', 'CONNECTED___c1__c2', 'CONNECTED___c1__c3']
    assert grounder.parse('CONNECTED___c2__c3') == ('CONNECTED', ('c2', 'c3'))
    assert grounder.groundings("quality'")[0] == "quality___c1'"


def test_unlisted_variables_take_defaults():
    compiled = build(*build_sysadmin(8))
    values = compiled.init_values
    assert values['running___c1'] is True
    assert values['running___c2'] is False
    for i in range(3, 9):
        assert values[f'running___c{i}'] is True
    for i in range(1, 9):
        assert values[f'quality___c{i}'] == 'good'
        assert values[f'reboot___c{i}'] is False
        for j in range(1, 9):
            connected = (j == i % 8 + 1)
            assert values[f'CONNECTED___c{i}__c{j}'] is connected
    assert values['REBOOT-PENALTY'] == 0.75
    assert values['REBOOT-PROB'] == 0.1


def test_registry():
    compiled = build(*build_sysadmin(3))
    model = compiled.model
    assert model.type_to_objects['computer'] == ('c1', 'c2', 'c3')
    assert model.type_to_objects['status'] == ('poor', 'good', 'excellent')
    assert model.object_types == ('computer',)
    assert model.enum_types == frozenset({'status'})
    assert model.object_to_index['excellent'] == 2
    assert model.is_literal('@poor')
    assert not model.is_literal('@c1')
    assert model.is_object('c2')
    assert model.variable_types["running'"] == 'next-state-fluent'
    assert model.variable_levels == {'num-neighbors': 1,
                                     'num-running-neighbors': 1,
                                     'running-prob': 2}
    with pytest.raises(TypeError):
        model.variable_types['running'] = 'action-fluent'


def test_variable_schemas():
    model = build(*build_sysadmin(3)).model
    running = model.variables['running']
    assert (running.fluent_type, running.range, running.param_types) == \
        ('state-fluent', 'bool', ('computer',))
    primed = model.variables["running'"]
    assert primed.fluent_type == 'next-state-fluent'
    assert primed.param_types == ('computer',)
    assert primed.default is None
    assert repr(primed) == "running'(computer)"
    assert str(model.variables['REBOOT-PROB']) == 'REBOOT-PROB/0'
    assert model.variables['running-prob'].level == 2
    assert "running-prob'" not in model.variables
    with pytest.raises(TypeError):
        model.variables['ping'] = running


def test_schema_validation():
    PVariable('total', 'interm-fluent', 'int', level=1).validate()
    with pytest.raises(RDDLValueOutOfRangeError):
        PVariable('total', 'interm-fluent', 'int', level=True).validate()
    with pytest.raises(RDDLTypeError):
        PVariable('total', 'derived-fluent', 'int').validate()
    with pytest.raises(RDDLTypeError):
        PVariable('count', 'state-fluent', 'int').validate()
    with pytest.raises(RDDLTypeError):
        PVariable('push', 'action-fluent', 'bool', default=False).next_state("'")


def test_max_nondef_actions_pos_inf():
    compiled = build(*build_sysadmin(5, max_nondef_actions='pos-inf'))
    assert compiled.max_allowed_actions == 5


def test_instance_extends_objects():
    builder = small_builder()
    builder.add_instance_object_values('computer', ['c3'])
    compiled = compile_builder(builder)
    assert compiled.model.type_to_objects['computer'] == ('c1', 'c2', 'c3')
    assert compiled.init_values['count___c3'] == 0


def test_overrides():
    builder = small_builder()
    builder.add_nonfluent_init('SPEED', ['c2'], 3)
    builder.add_init_state('mode', [], '@high')
    builder.add_init_state('count', ['c1'], 7)
    values = compile_builder(builder).init_values
    assert values['SPEED___c1'] == 1
    assert values['SPEED___c2'] == 3
    assert values['mode'] == 'high'
    assert values['count___c1'] == 7
    assert values['count___c2'] == 0


def test_repeated_override_keeps_last():
    builder = small_builder()
    builder.add_init_state('count', ['c1'], 2)
    builder.add_init_state('count', ['c1'], 4)
    with pytest.warns(UserWarning):
        compiled = compile_builder(builder)
    assert compiled.init_values['count___c1'] == 4


@pytest.mark.parametrize('override, error', [
    (('missing', ['c1'], 1), RDDLUndefinedVariableError),
    (('count', ['c9'], 1), RDDLUndeclaredGroundVariableError),
    (('count', [], 1), RDDLUndeclaredGroundVariableError),
    (('push', ['c1'], True), RDDLUndeclaredGroundVariableError),
    (('count', ['c1'], 1.5), RDDLTypeError),
    (('count', ['c1'], True), RDDLTypeError),
    (('mode', [], '@medium'), RDDLTypeError)
])
def test_invalid_init_state(override, error):
    builder = small_builder()
    builder.add_init_state(*override)
    with pytest.raises(error):
        compile_builder(builder)


def test_non_fluent_block_only_sets_non_fluents():
    builder = small_builder()
    builder.add_nonfluent_init('count', ['c1'], 1)
    with pytest.raises(RDDLUndeclaredGroundVariableError):
        compile_builder(builder)


def test_invalid_default():
    builder = small_builder()
    builder.add_pvariable('SPEED', ['computer'], 'non-fluent', 'int', 0.5)
    with pytest.raises(RDDLTypeError):
        compile_builder(builder)


def test_objects_must_be_unique():
    builder = small_builder()
    builder.add_instance_object_values('computer', ['c1'])
    with pytest.raises(RDDLInvalidObjectError):
        compile_builder(builder)


def test_object_type_needs_objects():
    builder = small_builder()
    builder.add_object_type('router')
    with pytest.raises(RDDLInvalidObjectError):
        compile_builder(builder)


def test_block_references():
    builder = small_builder()
    domain = builder.build_domain('small')
    non_fluents, instance = builder.build_instance('other', 'small_inst', 'small_nf')
    with pytest.raises(RDDLInstanceNotExistError):
        build(domain, non_fluents, instance)


@pytest.mark.parametrize('field, value', [
    ('horizon', -1), ('horizon', 2.5), ('discount', 1.5), ('discount', -0.1),
    ('max_nondef_actions', -2)
])
def test_instance_values_out_of_range(field, value):
    builder = small_builder()
    getattr(builder, f'add_{field}')(value)
    with pytest.raises(RDDLValueOutOfRangeError):
        compile_builder(builder)


def test_cpf_definitions():
    builder = small_builder()
    builder.cpf_defs.pop("mode'")
    with pytest.raises(RDDLMissingCPFDefinitionError):
        compile_builder(builder)

    builder = small_builder()
    builder.add_cpf("speed'", ['?c'], 1)
    with pytest.raises(RDDLUndefinedCPFError):
        compile_builder(builder)

    builder = small_builder()
    builder.add_cpf('mode', [], pvar('mode'))
    with pytest.raises(RDDLInvalidDependencyInCPFError):
        compile_builder(builder)

    builder = small_builder()
    builder.add_cpf("count'", [], 0)
    with pytest.raises(RDDLInvalidNumberOfArgumentsError):
        compile_builder(builder)

    builder = small_builder()
    builder.add_pvariable('pair', ['computer', 'computer'], 'state-fluent', 'bool', False)
    builder.add_cpf("pair'", ['?c', '?c'], False)
    with pytest.raises(RDDLRepeatedVariableError):
        compile_builder(builder)


def test_interm_requires_level():
    builder = small_builder()
    builder.add_pvariable('total', [], 'interm-fluent', 'int')
    builder.add_cpf('total', [], 1)
    with pytest.raises(RDDLValueOutOfRangeError):
        compile_builder(builder)


def test_requirements():
    builder = small_builder()
    builder.add_requirement('integer-valued')
    builder.add_requirement('concurrent')
    with pytest.raises(RDDLRequirementError):
        compile_builder(builder)
    builder.add_requirement('multivalued')
    compile_builder(builder)

    builder.add_requirement('teleportation')
    with pytest.raises(RDDLRequirementError):
        compile_builder(builder)


def test_builder_shallow_validation():
    builder = RDDLBuilder()
    with pytest.raises(ValueError):
        builder.add_pvariable('x', [], 'magic-fluent', 'bool', False)
    with pytest.raises(ValueError):
        builder.add_pvariable('x', ['computer'], 'state-fluent', 'bool', False)
