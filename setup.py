# [`websub`][1] Copyright @[Angelo Gladding][2] 2020-
#
# This program is free software: it is distributed in the hope that it
# will be useful, but *without any warranty*; without even the implied
# warranty of merchantability or fitness for a particular purpose. You
# can redistribute it and/or modify it under the terms of the @@[GNU's
# Not Unix][3] %[Affero General Public License][4] as published by the
# @@[Free Software Foundation][5], either version 3 of the License, or
# any later version.
#
# *[GNU]: GNU's Not Unix
#
# [1]: https://github.com/angelogladding/web
# [2]: https://angelogladding.com
# [3]: https://gnu.org
# [4]: https://gnu.org/licenses/agpl
# [5]: https://fsf.org

"""A WebSub subscriber: hub requests and callback verification."""

from setuptools import setup

setup(name="websub",
      version="0.1.0",
      description=__doc__,
      license="AGPL-3.0-or-later",
      packages=["websub"],
      python_requires=">=3.8",
      install_requires=["gevent", "lxml", "pendulum", "pydantic>=2",
                        "requests"],
      extras_require={"test": ["pytest"]},
      entry_points={"console_scripts": ["websub = websub.__main__:main"]})
