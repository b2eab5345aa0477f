"""Per-library build recipes.

Every recipe has the signature ``recipe(ctx, should_build, should_install)``.
The build phase configures and compiles inside ``ctx.build_dir``; the
install phase installs the already-built tree into ``ctx.output``.  Any
non-zero command exit raises RecipeError, which the supervisor turns into
a failed build.
"""

import os
import shlex
import signal
import subprocess
import threading

from errors import RecipeError


class RecipeContext:
    """What a recipe gets to work with: paths, job count and a command runner."""

    def __init__(self, source, output, jobs, build_dir, log, env=None,
                 verbose=False, echo=None):
        self.source = source
        self.output = output
        self.jobs = jobs
        self.build_dir = build_dir
        self.log = log
        self.env = dict(os.environ if env is None else env)
        self.verbose = verbose
        self._echo = echo
        self.process = None
        self._lock = threading.Lock()
        self._cancelled = None

    def run(self, cmd, env=None, cwd=None):
        """Run *cmd* with its output going to the library log."""
        line = "+ " + shlex.join(cmd)
        self.log.write(line + "\n")
        self.log.flush()
        if self.verbose and self._echo is not None:
            self._echo(line)

        run_env = dict(self.env)
        if env:
            run_env.update(env)
        with self._lock:
            if self._cancelled is not None:
                raise RecipeError(shlex.join(cmd), -self._cancelled)
            # Own process group so terminate() reaches make/ninja's children too.
            process = self.process = subprocess.Popen(
                cmd,
                cwd=cwd or self.build_dir,
                env=run_env,
                stdin=subprocess.DEVNULL,
                stdout=self.log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        returncode = process.wait()
        if returncode != 0:
            raise RecipeError(shlex.join(cmd), returncode)

    def terminate(self, signum=signal.SIGTERM):
        """Send *signum* to the running command's process group.

        Commands started afterwards fail immediately without running.
        """
        with self._lock:
            self._cancelled = signum
            process = self.process
            if process is None or process.poll() is not None:
                return
            try:
                os.killpg(process.pid, signum)
            except ProcessLookupError:
                pass


def _cmake(ctx, should_build, should_install, defines, source=None):
    if should_build:
        cmd = [
            "cmake",
            "-G", "Ninja",
            "-DCMAKE_BUILD_TYPE=Release",
            f"-DCMAKE_INSTALL_PREFIX={ctx.output}",
        ]
        cmd.extend(f"-D{d}" for d in defines)
        # Older CMakeLists.txt files declare cmake_minimum_required < 3.5,
        # which newer CMake rejects.
        cmd.append("-DCMAKE_POLICY_VERSION_MINIMUM=3.5")
        cmd.append(source or ctx.source)
        ctx.run(cmd)
        ctx.run(["cmake", "--build", ".", "--config", "Release", "-j", str(ctx.jobs)])
    if should_install:
        ctx.run(["cmake", "--install", ".", "--config", "Release"])


def _autotools(ctx, should_build, should_install, configure_args, env=None):
    if should_build:
        cmd = [os.path.join(ctx.source, "configure"), f"--prefix={ctx.output}"]
        cmd.extend(configure_args)
        ctx.run(cmd, env=env)
        ctx.run(["make", f"-j{ctx.jobs}"], env=env)
    if should_install:
        ctx.run(["make", "install"], env=env)


def build_protobuf(ctx, should_build, should_install):
    _cmake(ctx, should_build, should_install, [
        "protobuf_BUILD_TESTS=OFF",
        "ABSL_PROPAGATE_CXX_STD=ON",
    ])


def build_x264(ctx, should_build, should_install):
    _autotools(ctx, should_build, should_install, [
        "--enable-static",
        "--enable-pic",
        f"--bindir={os.path.join(ctx.output, 'bin')}",
    ])


def build_x265(ctx, should_build, should_install):
    # CMakeLists.txt lives one level down in x265's tree
    _cmake(ctx, should_build, should_install, ["ENABLE_SHARED=OFF"],
           source=os.path.join(ctx.source, "source"))


def build_libvpx(ctx, should_build, should_install):
    _autotools(ctx, should_build, should_install, [
        "--disable-examples",
        "--disable-unit-tests",
        "--enable-vp9-highbitdepth",
        "--as=yasm",
        "--enable-pic",
    ])


def build_opus(ctx, should_build, should_install):
    if should_build:
        ctx.run([os.path.join(ctx.source, "autogen.sh")], cwd=ctx.source)
    _autotools(ctx, should_build, should_install, [
        "--enable-static",
        "--disable-shared",
        "--with-pic",
    ])


def build_dav1d(ctx, should_build, should_install):
    if should_build:
        ctx.run([
            "meson", "setup",
            "-Denable_tools=false",
            "-Denable_tests=false",
            "--default-library=static",
            "--prefix", ctx.output,
            "--libdir", os.path.join(ctx.output, "lib"),
            ctx.build_dir,
            ctx.source,
        ])
        ctx.run(["ninja", "-j", str(ctx.jobs)])
    if should_install:
        ctx.run(["ninja", "install"])


def build_svt_av1(ctx, should_build, should_install):
    _cmake(ctx, should_build, should_install, [
        "BUILD_DEC=OFF",
        "BUILD_SHARED_LIBS=OFF",
    ])


def build_opencv(ctx, should_build, should_install):
    _cmake(ctx, should_build, should_install, [
        "BUILD_SHARED_LIBS=OFF",
        "OPENCV_GENERATE_PKGCONFIG=ON",
        "BUILD_LIST=core,imgproc,imgcodecs",
    ])


def build_ffmpeg(ctx, should_build, should_install):
    # The codecs above were installed into the prefix; point configure at them.
    env = {
        "PATH": os.path.join(ctx.output, "bin") + ":" + ctx.env.get("PATH", ""),
        "PKG_CONFIG_PATH": os.path.join(ctx.output, "lib", "pkgconfig"),
    }
    _autotools(ctx, should_build, should_install, [
        "--extra-libs=-lpthread -lm",
        "--pkg-config-flags=--static",
        f"--extra-cflags=-I{os.path.join(ctx.output, 'include')}",
        f"--extra-ldflags=-L{os.path.join(ctx.output, 'lib')}",
        "--disable-static",
        "--enable-shared",
        "--enable-pic",
        "--enable-gpl",
        "--enable-libx264",
        "--enable-libx265",
        "--enable-libvpx",
        "--enable-libopus",
        "--enable-libdav1d",
        "--enable-libsvtav1",
        "--enable-nonfree",
    ], env=env)
