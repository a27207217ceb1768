""" Transient overrides for the option sets held by endpoints and workers.
    A method accepting *parameters* applies them on top of the persistent
    options for the duration of one call; the previous values are put back
    afterwards, whether or not the call succeeded.

    Only keys already present in the option set can be overridden. Unknown
    keys are ignored, so that a call cannot introduce configuration the
    downstream transport call does not expect.
"""

import collections
import contextlib
import copy


class _Absent:
    """ Marker recorded in a snapshot for a key that did not exist before
        the override was applied. Restoring such a key removes it.
    """

    def __repr__(self):
        return 'ABSENT'

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _Absent()


# Informational record of the last override applied to an owner. It is
# never used to restore anything; restore() only needs the prior values.

Snapshot = collections.namedtuple('Snapshot', 'member prior applied')


def apply(current, overrides, extend=False):
    """ Apply the *overrides* on top of the *current* options. Returns a
        tuple of the new options (a fresh dictionary, *current* is left
        untouched) and a dictionary of the prior values for every key that
        was changed.

        Keys not already present in *current* are skipped, unless *extend*
        is True; in that case they are added, and recorded in the snapshot
        as :data:`ABSENT`. Overriding a key with :data:`ABSENT` removes it.
    """

    new = dict(current)
    prior = dict()

    if not overrides:
        return new, prior

    for key, value in overrides.items():
        if key in current:
            prior[key] = current[key]
        elif extend == True:
            prior[key] = ABSENT
        else:
            continue

        if value is ABSENT:
            new.pop(key, None)
        else:
            new[key] = value

    return new, prior


def restore(current, snapshot):
    """ Reapply the prior values in *snapshot* to the *current* options,
        returning a fresh dictionary. Keys whose prior value is
        :data:`ABSENT` are removed rather than set to None.
    """

    new = dict(current)

    for key, value in snapshot.items():
        if value is ABSENT:
            new.pop(key, None)
        else:
            new[key] = value

    return new


@contextlib.contextmanager
def overridden(owner, member, overrides, sub=None, extend=False):
    """ Context manager applying *overrides* to the option dictionary held
        in the *member* attribute of *owner*; if *sub* is specified the
        overrides apply to the nested dictionary stored under that key. The
        effective options are yielded, and the attribute is restored on
        every exit path, including exceptions.

        The applied change is recorded as a :class:`Snapshot` in the
        *mutation* attribute of *owner*, for debugging purposes.
    """

    options = getattr(owner, member)

    if not overrides:
        yield options
        return

    if sub is None:
        target = options
    else:
        target = options[sub]

    new, prior = apply(target, overrides, extend)

    if sub is None:
        setattr(owner, member, new)
    else:
        replaced = dict(options)
        replaced[sub] = new
        setattr(owner, member, replaced)

    applied = dict((key, overrides[key]) for key in prior)
    owner.mutation = Snapshot(member, copy.deepcopy(prior), applied)

    try:
        yield getattr(owner, member)
    finally:
        options = getattr(owner, member)

        if sub is None:
            setattr(owner, member, restore(options, prior))
        else:
            restored = dict(options)
            restored[sub] = restore(options[sub], prior)
            setattr(owner, member, restored)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
