'''Generator for the SysAdmin domain: a network of computers arranged in a
ring, each of which can crash and be rebooted. A running computer keeps
running with a probability that grows with the number of its running
neighbors, and its quality of service is drawn from a discrete distribution.
'''
from typing import Dict, Optional, Tuple

from pyRDDLSim.core.builder import (
    RDDLBuilder,
    aggregation,
    arithmetic,
    discrete,
    if_then_else,
    literal,
    logical,
    pvar,
    random_variable,
    relational
)
from pyRDDLSim.core.parser.rddl import Domain, Instance, NonFluents

STATUS = ('poor', 'good', 'excellent')
QUALITY_PROBS = {'poor': 0.1, 'good': 0.5, 'excellent': 0.4}


def computers(num_computers: int):
    return [f'c{i + 1}' for i in range(num_computers)]


def build_domain(observed: bool=False,
                 quality_probs: Optional[Dict[str, float]]=None,
                 concurrent: bool=False) -> Domain:
    '''Builds the SysAdmin domain block.

    :param observed: whether the state is only observed through noisy pings
    :param quality_probs: probability of each quality status of a running
    computer, must cover poor, good and excellent
    :param concurrent: whether to declare the concurrent requirement
    '''
    if quality_probs is None:
        quality_probs = QUALITY_PROBS
    builder = RDDLBuilder()
    for req in ('continuous', 'integer-valued', 'multivalued',
                'intermediate-nodes', 'constrained-state', 'reward-deterministic'):
        builder.add_requirement(req)
    if observed:
        builder.add_requirement('partially-observed')
    if concurrent:
        builder.add_requirement('concurrent')

    builder.add_object_type('computer')
    builder.add_enum_type('status', STATUS)

    builder.add_pvariable('CONNECTED', ['computer', 'computer'], 'non-fluent', 'bool', False)
    builder.add_pvariable('REBOOT-PROB', [], 'non-fluent', 'real', 0.1)
    builder.add_pvariable('REBOOT-PENALTY', [], 'non-fluent', 'real', 0.75)
    builder.add_pvariable('running', ['computer'], 'state-fluent', 'bool', True)
    builder.add_pvariable('quality', ['computer'], 'state-fluent', 'status', 'good')
    builder.add_pvariable('reboot', ['computer'], 'action-fluent', 'bool', False)
    builder.add_pvariable('num-neighbors', ['computer'], 'interm-fluent', 'int', level=1)
    builder.add_pvariable('num-running-neighbors', ['computer'], 'interm-fluent', 'int', level=1)
    builder.add_pvariable('running-prob', ['computer'], 'interm-fluent', 'real', level=2)
    if observed:
        builder.add_pvariable('ping', ['computer'], 'observ-fluent', 'bool')

    # neighbors are the computers connected to ?c
    builder.add_cpf('num-neighbors', ['?c'], aggregation(
        'sum', [('?d', 'computer')], pvar('CONNECTED', ['?d', '?c'])))
    builder.add_cpf('num-running-neighbors', ['?c'], aggregation(
        'sum', [('?d', 'computer')],
        logical('^', pvar('CONNECTED', ['?d', '?c']), pvar('running', ['?d']))))
    builder.add_cpf('running-prob', ['?c'], arithmetic(
        '+', 0.45, arithmetic(
            '*', 0.5, arithmetic(
                '/',
                arithmetic('+', 1, pvar('num-running-neighbors', ['?c'])),
                arithmetic('+', 1, pvar('num-neighbors', ['?c']))))))

    builder.add_cpf("running'", ['?c'], if_then_else(
        pvar('reboot', ['?c']),
        random_variable('KronDelta', True),
        if_then_else(
            pvar('running', ['?c']),
            random_variable('Bernoulli', pvar('running-prob', ['?c'])),
            random_variable('Bernoulli', pvar('REBOOT-PROB')))))
    builder.add_cpf("quality'", ['?c'], if_then_else(
        pvar("running'", ['?c']),
        discrete('status', [(label, quality_probs[label]) for label in STATUS]),
        random_variable('KronDelta', literal('poor'))))
    if observed:
        builder.add_cpf('ping', ['?c'], if_then_else(
            pvar("running'", ['?c']),
            random_variable('Bernoulli', 0.95),
            random_variable('Bernoulli', 0.05)))

    builder.add_reward(aggregation('sum', [('?c', 'computer')], arithmetic(
        '-', pvar('running', ['?c']),
        arithmetic('*', pvar('REBOOT-PENALTY'), pvar('reboot', ['?c'])))))

    builder.add_invariant(logical(
        '^',
        relational('>=', pvar('REBOOT-PROB'), 0.0),
        relational('<=', pvar('REBOOT-PROB'), 1.0)))
    return builder.build_domain('sysadmin')


def build_instance(num_computers: int=8,
                   horizon: int=20,
                   discount: float=0.9,
                   max_nondef_actions=1,
                   init_running: Optional[Dict[str, bool]]=None,
                   reboot_prob: float=0.1) -> Tuple[NonFluents, Instance]:
    '''Builds the non-fluents and instance blocks of a ring of computers
    c1, ..., cN where each ci is connected to its successor.

    :param num_computers: number of computers in the ring
    :param horizon: number of decision steps
    :param discount: discount factor
    :param max_nondef_actions: maximum number of reboots per step or pos-inf
    :param init_running: initial running status of computers, by default
    c1 is running and c2 is down
    :param reboot_prob: probability that a crashed computer restarts itself
    '''
    if init_running is None:
        init_running = {'c1': True, 'c2': False}
    names = computers(num_computers)

    builder = RDDLBuilder()
    builder.add_object_values('computer', names)
    for (i, name) in enumerate(names):
        succ = names[(i + 1) % num_computers]
        builder.add_nonfluent_init('CONNECTED', [name, succ], True)
    builder.add_nonfluent_init('REBOOT-PROB', [], reboot_prob)
    for (name, value) in init_running.items():
        builder.add_init_state('running', [name], value)
    builder.add_max_nondef_actions(max_nondef_actions)
    builder.add_horizon(horizon)
    builder.add_discount(discount)
    return builder.build_instance(
        'sysadmin', f'sysadmin_inst_{num_computers}', f'sysadmin_nf_{num_computers}')


def build_sysadmin(num_computers: int=8, observed: bool=False,
                   **instance_kwargs) -> Tuple[Domain, NonFluents, Instance]:
    '''Returns the domain, non-fluents and instance blocks of SysAdmin.'''
    max_nondef = instance_kwargs.get('max_nondef_actions', 1)
    concurrent = max_nondef == 'pos-inf' or max_nondef > 1
    domain = build_domain(observed=observed, concurrent=concurrent)
    non_fluents, instance = build_instance(num_computers, **instance_kwargs)
    return domain, non_fluents, instance
