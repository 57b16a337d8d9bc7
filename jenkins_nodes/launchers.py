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
.. module:: jenkins_nodes.launchers
    :platform: Unix, Windows
    :synopsis: Node launchers and SSH host key verification strategies

Jenkins stores pluggable node extensions as elements tagged with the Java
class implementing them::

    <launcher class="hudson.plugins.sshslaves.SSHLauncher">
      <host>agent1.example.com</host>
      <sshHostKeyVerificationStrategy
        class="hudson.plugins.sshslaves.verifiers.NonVerifyingKeyVerificationStrategy"/>
    </launcher>

The element's children depend on that class, so each family of extensions
goes through a :class:`PolymorphicCodec` which picks the Python variant from
the ``class`` attribute before decoding the children.
'''

import logging
from xml.sax.saxutils import escape
import xml.etree.ElementTree as ET

from jenkins_nodes.exceptions import DecodeException

logger = logging.getLogger(__name__)

LAUNCHER_JNLP = 'hudson.slaves.JNLPLauncher'
LAUNCHER_SSH = 'hudson.plugins.sshslaves.SSHLauncher'

NON_VERIFYING_STRATEGY = \
    'hudson.plugins.sshslaves.verifiers.NonVerifyingKeyVerificationStrategy'
KNOWN_HOSTS_FILE_STRATEGY = \
    'hudson.plugins.sshslaves.verifiers.KnownHostsFileKeyVerificationStrategy'
MANUALLY_PROVIDED_KEY_STRATEGY = \
    'hudson.plugins.sshslaves.verifiers.ManuallyProvidedKeyVerificationStrategy'
MANUALLY_TRUSTED_KEY_STRATEGY = \
    'hudson.plugins.sshslaves.verifiers.ManuallyTrustedKeyVerificationStrategy'


def inner_xml(element):
    '''Return the raw content of ``element``, without its own tags.

    :param element: element to serialize, ``xml.etree.ElementTree.Element``
    :returns: text and serialized children, ``str``
    '''
    parts = [escape(element.text or '')]
    for child in element:
        parts.append(ET.tostring(child, encoding='unicode'))
    return ''.join(parts)


def append_inner_xml(element, raw):
    '''Parse ``raw`` and append its content to ``element``.'''
    if not raw or not raw.strip():
        return element
    root = ET.fromstring('<root>%s</root>' % raw)
    element.text = root.text
    element.extend(list(root))
    return element


def get_text(root, tag, default=None):
    child = root.find(tag)
    if child is None or child.text is None:
        return default
    return child.text.strip()


def get_bool(root, tag, default=False):
    value = get_text(root, tag)
    if not value:
        return default
    return value.lower() == 'true'


def get_int(root, tag, default=None):
    value = get_text(root, tag)
    if not value:
        return default
    return int(value)


def add_child(parent, tag, value):
    '''Append ``<tag>value</tag>`` to ``parent`` unless value is ``None``.'''
    if value is None:
        return None
    child = ET.SubElement(parent, tag)
    if isinstance(value, bool):
        child.text = 'true' if value else 'false'
    else:
        child.text = str(value)
    return child


def drop_none(data):
    return dict((k, v) for k, v in data.items() if v is not None)


class Model(object):
    '''Value object compared and printed by its attributes.'''

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    __hash__ = None

    def __repr__(self):
        fields = ', '.join('%s=%r' % item for item in sorted(vars(self).items()))
        return '%s(%s)' % (type(self).__name__, fields)


class Variant(Model):
    '''An extension element whose shape is selected by ``stapler_class``.'''

    stapler_class = None

    @classmethod
    def from_xml(cls, root):
        '''Build the variant from the children of ``root``.

        :param root: synthetic element wrapping the inner XML of the
                     class-tagged element, ``Element``
        '''
        return cls()

    def to_xml(self, element):
        '''Append the variant's own fields to ``element``.'''
        return element

    def to_json(self):
        '''Return the structure submitted in Jenkins' form JSON.'''
        return {'stapler-class': self.stapler_class}


class UnknownVariant(Variant):
    '''An extension whose class is not known to this library.

    Its content is kept as raw XML so that it is written back untouched.
    '''

    def __init__(self, stapler_class, inner_xml=''):
        self.stapler_class = stapler_class
        self.inner_xml = inner_xml

    def to_xml(self, element):
        try:
            return append_inner_xml(element, self.inner_xml)
        except ET.ParseError as e:
            raise DecodeException(
                'Could not parse raw XML of class[%s]: %s'
                % (self.stapler_class, e), self.stapler_class)


class UnknownLauncher(UnknownVariant):
    pass


class UnknownKeyVerificationStrategy(UnknownVariant):
    pass


class PolymorphicCodec(object):
    '''Decode and encode elements tagged with a ``class`` attribute.

    Decoding takes two passes. The element is first read generically,
    keeping only the ``class`` attribute and the raw inner XML. Once the
    discriminator has selected a variant, the inner XML is parsed again,
    wrapped in a synthetic ``<root>`` element, and handed to the variant's
    :meth:`Variant.from_xml`. Discriminators without a registered variant
    decode to ``unknown``, which carries no variant fields.

    :param kind: human readable name of the extension family, ``str``
    :param unknown: class used for unregistered discriminators
    '''

    def __init__(self, kind, unknown):
        self.kind = kind
        self.unknown = unknown
        self._variants = {}

    def register(self, variant):
        '''Class decorator mapping ``variant.stapler_class`` to ``variant``.'''
        self._variants[variant.stapler_class] = variant
        return variant

    def variants(self):
        return dict(self._variants)

    def decode_string(self, text):
        '''Decode a class-tagged element given as an XML string.'''
        try:
            element = ET.fromstring(text)
        except ET.ParseError as e:
            raise DecodeException('Could not parse %s XML: %s'
                                  % (self.kind, e))
        return self.decode(element)

    def decode(self, element):
        '''Decode a class-tagged ``Element`` into its variant.

        :raises: :class:`DecodeException` naming the discriminator when the
                 content does not match the variant
        '''
        stapler_class = element.get('class')
        raw = inner_xml(element)

        variant = self._variants.get(stapler_class)
        if variant is None:
            logger.warning('Unknown %s class[%s], keeping its raw XML',
                           self.kind, stapler_class)
            return self.unknown(stapler_class, raw)

        try:
            root = ET.fromstring('<root>%s</root>' % raw)
        except ET.ParseError as e:
            raise DecodeException('Could not parse %s class[%s]: %s'
                                  % (self.kind, stapler_class, e),
                                  stapler_class)
        try:
            return variant.from_xml(root)
        except ValueError as e:
            raise DecodeException('Invalid %s class[%s]: %s'
                                  % (self.kind, stapler_class, e),
                                  stapler_class)

    def encode(self, value, tag):
        '''Encode ``value`` as ``<tag class="...">`` with its fields.

        :returns: ``xml.etree.ElementTree.Element``
        '''
        element = ET.Element(tag)
        if value.stapler_class is not None:
            element.set('class', value.stapler_class)
        return value.to_xml(element)


launcher_codec = PolymorphicCodec('launcher', UnknownLauncher)
strategy_codec = PolymorphicCodec('host key verification strategy',
                                  UnknownKeyVerificationStrategy)


@strategy_codec.register
class NonVerifyingKeyVerificationStrategy(Variant):
    '''Accept whatever host key the agent presents.'''
    stapler_class = NON_VERIFYING_STRATEGY


@strategy_codec.register
class KnownHostsFileKeyVerificationStrategy(Variant):
    '''Check the host key against ``~/.ssh/known_hosts`` on the controller.'''
    stapler_class = KNOWN_HOSTS_FILE_STRATEGY


@strategy_codec.register
class ManuallyProvidedKeyVerificationStrategy(Variant):
    '''Check the host key against a key configured on the node.

    :param algorithm: key algorithm, e.g. ``ssh-rsa``, ``str``
    :param key: base64 encoded public key, ``str``
    '''
    stapler_class = MANUALLY_PROVIDED_KEY_STRATEGY

    def __init__(self, algorithm=None, key=None):
        self.algorithm = algorithm
        self.key = key

    @classmethod
    def from_xml(cls, root):
        key = root.find('key')
        if key is None:
            return cls()
        return cls(algorithm=get_text(key, 'algorithm'),
                   key=get_text(key, 'key'))

    def to_xml(self, element):
        key = ET.SubElement(element, 'key')
        add_child(key, 'algorithm', self.algorithm)
        add_child(key, 'key', self.key)
        return element

    def to_json(self):
        data = super(ManuallyProvidedKeyVerificationStrategy, self).to_json()
        # the form takes the key the way it appears in known_hosts
        data['key'] = ' '.join(part for part in (self.algorithm, self.key)
                               if part)
        return data


@strategy_codec.register
class ManuallyTrustedKeyVerificationStrategy(Variant):
    '''Trust the first key seen, optionally after a manual approval.'''
    stapler_class = MANUALLY_TRUSTED_KEY_STRATEGY

    def __init__(self, require_initial_manual_trust=False):
        self.require_initial_manual_trust = require_initial_manual_trust

    @classmethod
    def from_xml(cls, root):
        return cls(get_bool(root, 'requireInitialManualTrust'))

    def to_xml(self, element):
        add_child(element, 'requireInitialManualTrust',
                  self.require_initial_manual_trust)
        return element

    def to_json(self):
        data = super(ManuallyTrustedKeyVerificationStrategy, self).to_json()
        data['requireInitialManualTrust'] = self.require_initial_manual_trust
        return data


class WorkDirSettings(Model):
    '''Remoting work directory settings of an inbound agent.'''

    def __init__(self, disabled=False, internal_dir='remoting',
                 fail_if_missing=False):
        self.disabled = disabled
        self.internal_dir = internal_dir
        self.fail_if_missing = fail_if_missing

    @classmethod
    def from_xml(cls, element):
        return cls(disabled=get_bool(element, 'disabled'),
                   internal_dir=get_text(element, 'internalDir', ''),
                   fail_if_missing=get_bool(element,
                                            'failIfWorkDirIsMissing'))

    def to_xml(self, element):
        add_child(element, 'disabled', self.disabled)
        add_child(element, 'internalDir', self.internal_dir)
        add_child(element, 'failIfWorkDirIsMissing', self.fail_if_missing)
        return element

    def to_json(self):
        return {
            'disabled': self.disabled,
            'internalDir': self.internal_dir,
            'failIfWorkDirIsMissing': self.fail_if_missing,
        }


@launcher_codec.register
class JNLPLauncher(Variant):
    '''Inbound agent that connects back to the controller.

    :param web_socket: connect over WebSocket instead of TCP, ``bool``
    :param work_dir_settings: remoting work directory, ``WorkDirSettings``
    '''
    stapler_class = LAUNCHER_JNLP

    def __init__(self, web_socket=False, work_dir_settings=None):
        self.web_socket = web_socket
        if work_dir_settings is None:
            work_dir_settings = WorkDirSettings()
        self.work_dir_settings = work_dir_settings

    @classmethod
    def from_xml(cls, root):
        settings = root.find('workDirSettings')
        if settings is not None:
            settings = WorkDirSettings.from_xml(settings)
        return cls(web_socket=get_bool(root, 'webSocket'),
                   work_dir_settings=settings)

    def to_xml(self, element):
        self.work_dir_settings.to_xml(
            ET.SubElement(element, 'workDirSettings'))
        add_child(element, 'webSocket', self.web_socket)
        return element

    def to_json(self):
        data = super(JNLPLauncher, self).to_json()
        data['webSocket'] = self.web_socket
        data['workDirSettings'] = self.work_dir_settings.to_json()
        return data


@launcher_codec.register
class SSHLauncher(Variant):
    '''Start the agent over SSH from the controller.

    :param host: agent host name, ``str``
    :param port: SSH port, ``int``
    :param credentials_id: id of the Jenkins credentials to log in with,
                           ``str``
    :param launch_timeout_seconds: connection timeout, ``int``
    :param max_num_retries: connection attempts before giving up, ``int``
    :param retry_wait_time: seconds between attempts, ``int``
    :param tcp_no_delay: disable Nagle's algorithm, ``bool``
    :param host_key_verification_strategy: one of the
        ``*KeyVerificationStrategy`` classes
    '''
    stapler_class = LAUNCHER_SSH

    def __init__(self, host=None, port=22, credentials_id=None,
                 launch_timeout_seconds=None, max_num_retries=None,
                 retry_wait_time=None, tcp_no_delay=True,
                 host_key_verification_strategy=None):
        self.host = host
        self.port = port
        self.credentials_id = credentials_id
        self.launch_timeout_seconds = launch_timeout_seconds
        self.max_num_retries = max_num_retries
        self.retry_wait_time = retry_wait_time
        self.tcp_no_delay = tcp_no_delay
        self.host_key_verification_strategy = host_key_verification_strategy

    @classmethod
    def from_xml(cls, root):
        strategy = root.find('sshHostKeyVerificationStrategy')
        if strategy is not None:
            strategy = strategy_codec.decode(strategy)
        return cls(host=get_text(root, 'host'),
                   port=get_int(root, 'port', 22),
                   credentials_id=get_text(root, 'credentialsId'),
                   launch_timeout_seconds=get_int(root,
                                                  'launchTimeoutSeconds'),
                   max_num_retries=get_int(root, 'maxNumRetries'),
                   retry_wait_time=get_int(root, 'retryWaitTime'),
                   tcp_no_delay=get_bool(root, 'tcpNoDelay', True),
                   host_key_verification_strategy=strategy)

    def to_xml(self, element):
        add_child(element, 'host', self.host)
        add_child(element, 'port', self.port)
        add_child(element, 'credentialsId', self.credentials_id)
        add_child(element, 'launchTimeoutSeconds',
                  self.launch_timeout_seconds)
        add_child(element, 'maxNumRetries', self.max_num_retries)
        add_child(element, 'retryWaitTime', self.retry_wait_time)
        if self.host_key_verification_strategy is not None:
            element.append(strategy_codec.encode(
                self.host_key_verification_strategy,
                'sshHostKeyVerificationStrategy'))
        add_child(element, 'tcpNoDelay', self.tcp_no_delay)
        return element

    def to_json(self):
        data = super(SSHLauncher, self).to_json()
        data.update({
            'host': self.host,
            'port': self.port,
            'credentialsId': self.credentials_id,
            'launchTimeoutSeconds': self.launch_timeout_seconds,
            'maxNumRetries': self.max_num_retries,
            'retryWaitTime': self.retry_wait_time,
            'tcpNoDelay': self.tcp_no_delay,
        })
        if self.host_key_verification_strategy is not None:
            data['sshHostKeyVerificationStrategy'] = \
                self.host_key_verification_strategy.to_json()
        return drop_none(data)
