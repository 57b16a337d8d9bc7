#!/usr/bin/env python
# Software License Agreement (BSD License)
#
# Copyright (c) 2010, Willow Garage, Inc.
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions
# are met:
#
#  * Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#  * Redistributions in binary form must reproduce the above
#    copyright notice, this list of conditions and the following
#    disclaimer in the documentation and/or other materials provided
#    with the distribution.
#  * Neither the name of Willow Garage, Inc. nor the names of its
#    contributors may be used to endorse or promote products derived
#    from this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# 'AS IS' AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT OWNER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

'''
.. module:: jenkins_nodes.nodes
    :platform: Unix, Windows
    :synopsis: Node configuration model and its wire formats

A :class:`Node` travels in three shapes. Creation posts a form whose
``json`` field holds the node as JSON (:meth:`Node.to_form`), node
configuration is read and written as a ``<slave>`` XML document
(:meth:`Node.from_xml`, :meth:`Node.to_xml`), and listing returns a
``{"computer": [...]}`` envelope of which only names and descriptions are
kept (:func:`nodes_from_list`).
'''

import json
import re
import xml.etree.ElementTree as ET

from jenkins_nodes.exceptions import DecodeException
from jenkins_nodes.launchers import add_child
from jenkins_nodes.launchers import append_inner_xml
from jenkins_nodes.launchers import get_int
from jenkins_nodes.launchers import get_text
from jenkins_nodes.launchers import inner_xml
from jenkins_nodes.launchers import JNLPLauncher
from jenkins_nodes.launchers import launcher_codec
from jenkins_nodes.launchers import Model

NODE_TYPE = 'hudson.slaves.DumbSlave$DescriptorImpl'
MODE_NORMAL = 'NORMAL'
MODE_EXCLUSIVE = 'EXCLUSIVE'
RETENTION_ALWAYS = 'hudson.slaves.RetentionStrategy$Always'

XML_DECLARATION = "<?xml version='1.0' encoding='UTF-8'?>\n"

# ElementTree only reads XML 1.0; Jenkins config files are 1.0 in practice
_XML_11_DECLARATION = re.compile(
    br'^(\s*<\?xml[^>]*?version\s*=\s*["\'])1\.1(["\'])')


class RetentionStrategy(Model):
    '''When the node is brought online and offline.

    Only the implementing class is tracked.

    :param stapler_class: retention strategy class, ``str``
    '''

    def __init__(self, stapler_class=RETENTION_ALWAYS):
        self.stapler_class = stapler_class

    @classmethod
    def from_element(cls, element):
        return cls(element.get('class'))

    def to_element(self):
        element = ET.Element('retentionStrategy')
        if self.stapler_class is not None:
            element.set('class', self.stapler_class)
        return element

    def to_json(self):
        return {'stapler-class': self.stapler_class}


class NodeProperties(Model):
    '''Opaque bag of node properties.

    The content of ``<nodeProperties>`` is kept as raw XML so that reading
    and then updating a node leaves its properties alone. The form used on
    creation only carries the empty bag marker.
    '''

    def __init__(self, inner_xml=''):
        self.inner_xml = inner_xml

    @classmethod
    def from_element(cls, element):
        return cls(inner_xml(element))

    def to_element(self):
        try:
            return append_inner_xml(ET.Element('nodeProperties'),
                                    self.inner_xml)
        except ET.ParseError as e:
            raise DecodeException('Could not parse node properties: %s' % e)

    def to_json(self):
        return {'stapler-class-bag': 'true'}


def _unique(labels):
    seen = []
    for label in labels:
        if label and label not in seen:
            seen.append(label)
    return seen


class Node(Model):
    '''A Jenkins node (agent) configuration.

    Fields left as ``None`` (or ``0`` for ``num_executors``) are filled by
    :meth:`fill_defaults` before the node is sent to the server.

    :param name: node name, unique on the server, ``str``
    :param description: free text description, ``str``
    :param remote_fs: remote root directory of the agent, ``str``
    :param num_executors: number of executors, ``int``
    :param mode: ``MODE_NORMAL`` or ``MODE_EXCLUSIVE``, ``str``
    :param node_type: node implementation descriptor, ``str``
    :param labels: labels of the node, ``list`` of ``str`` or a space
                   separated ``str``
    :param launcher: a launcher from :mod:`jenkins_nodes.launchers`
    :param retention_strategy: :class:`RetentionStrategy`
    :param properties: :class:`NodeProperties`
    '''

    def __init__(self, name, description='', remote_fs='',
                 num_executors=None, mode=MODE_NORMAL, node_type=None,
                 labels=None, launcher=None, retention_strategy=None,
                 properties=None):
        self.name = name
        self.description = description
        self.remote_fs = remote_fs
        self.num_executors = num_executors
        self.mode = mode
        self.node_type = node_type
        if isinstance(labels, str):
            labels = labels.split()
        self.labels = _unique(labels or [])
        self.launcher = launcher
        self.retention_strategy = retention_strategy
        self.properties = properties

    @property
    def label_string(self):
        return ' '.join(self.labels)

    def fill_defaults(self):
        '''Fill in the fields Jenkins requires but the caller left unset.

        Values already set are never replaced, so calling this twice has no
        further effect.

        :returns: the node itself, :class:`Node`
        '''
        if self.launcher is None:
            self.launcher = JNLPLauncher()
        if self.properties is None:
            self.properties = NodeProperties()
        if not self.node_type:
            self.node_type = NODE_TYPE
        if not self.num_executors:
            self.num_executors = 1
        if self.retention_strategy is None:
            self.retention_strategy = RetentionStrategy()
        return self

    def to_json(self):
        '''Return the node as the JSON structure of the creation form.'''
        def _json(value):
            return value.to_json() if value is not None else None

        return {
            'name': self.name,
            'nodeDescription': self.description,
            'remoteFS': self.remote_fs,
            'numExecutors': self.num_executors,
            'mode': self.mode,
            'type': self.node_type,
            'labelString': self.label_string,
            'retentionStrategy': _json(self.retention_strategy),
            'nodeProperties': _json(self.properties),
            'launcher': _json(self.launcher),
        }

    def to_form(self):
        '''Return the form fields posted to create the node.

        Jenkins expects ``name`` and ``type`` next to the whole node encoded
        as JSON in a single ``json`` field.

        :returns: form fields, ``dict``
        '''
        return {
            'name': self.name,
            'type': self.node_type,
            'json': json.dumps(self.to_json()),
        }

    def to_element(self):
        root = ET.Element('slave')
        add_child(root, 'name', self.name)
        add_child(root, 'description', self.description or '')
        add_child(root, 'remoteFS', self.remote_fs)
        add_child(root, 'numExecutors', self.num_executors)
        add_child(root, 'mode', self.mode)
        if self.retention_strategy is not None:
            root.append(self.retention_strategy.to_element())
        if self.launcher is not None:
            root.append(launcher_codec.encode(self.launcher, 'launcher'))
        add_child(root, 'label', self.label_string)
        if self.properties is not None:
            root.append(self.properties.to_element())
        return root

    def to_xml(self):
        '''Return the node as a ``config.xml`` document, ``str``.'''
        return XML_DECLARATION + ET.tostring(self.to_element(),
                                             encoding='unicode')

    @classmethod
    def from_element(cls, root):
        try:
            num_executors = get_int(root, 'numExecutors')
        except ValueError as e:
            raise DecodeException('Invalid numExecutors for node[%s]: %s'
                                  % (get_text(root, 'name'), e))

        node = cls(get_text(root, 'name'),
                   description=get_text(root, 'description', ''),
                   remote_fs=get_text(root, 'remoteFS', ''),
                   num_executors=num_executors,
                   mode=get_text(root, 'mode', MODE_NORMAL),
                   labels=get_text(root, 'label', ''))

        launcher = root.find('launcher')
        if launcher is not None:
            node.launcher = launcher_codec.decode(launcher)
        retention_strategy = root.find('retentionStrategy')
        if retention_strategy is not None:
            node.retention_strategy = RetentionStrategy.from_element(
                retention_strategy)
        properties = root.find('nodeProperties')
        if properties is not None:
            node.properties = NodeProperties.from_element(properties)
        return node

    @classmethod
    def from_xml(cls, config_xml):
        '''Parse a node ``config.xml`` document.

        :param config_xml: document as returned by Jenkins, ``bytes`` or
                           ``str``
        :returns: :class:`Node`
        '''
        if not isinstance(config_xml, bytes):
            config_xml = config_xml.encode('utf-8')
        config_xml = _XML_11_DECLARATION.sub(br'\g<1>1.0\g<2>', config_xml,
                                             count=1).lstrip()
        try:
            root = ET.fromstring(config_xml)
        except ET.ParseError as e:
            raise DecodeException('Could not parse node XML: %s' % e)
        return cls.from_element(root)


def nodes_from_list(data):
    '''Project a ``computer/api/json`` response onto :class:`Node` values.

    Executor and monitoring data is dropped; only the display name and the
    description of each computer are kept.

    :param data: decoded JSON response, ``dict``
    :returns: ``list`` of :class:`Node`
    '''
    try:
        return [Node(computer['displayName'],
                     description=computer.get('description') or '')
                for computer in data['computer']]
    except (KeyError, TypeError, AttributeError) as e:
        raise DecodeException('Unexpected node list payload: %r' % (e,))
