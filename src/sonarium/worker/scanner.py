"""Scan job orchestration for music library management.

This module drives a scan from start to finish and records it as a ScanJob:

    STARTING -> STARTED -> COMPLETE | FAILED | INTERRUPTED

A FULL scan walks the target folders, removes songs and artworks inside them
whose files are gone (rows outside the targets are left alone), imports every audio file (one transaction per song), searches
folder images for songs without artwork and saves a ScanResult. An EDIT scan
writes tag changes to song files and re-imports them.

Only one job may be in flight. The check-then-create is serialized with an
asyncio.Lock and backed by a UNIQUE column on scan_jobs, so a second request
is rejected with ScanJobAlreadyRunningError instead of being queued.

Typical usage example:
    service = ScanJobService(AsyncSessionLocal)
    job = await service.start_scan_job(["/music"])
    progress = await service.get_current_scan_job_progress()
"""

import asyncio
import concurrent.futures
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sonarium.core.config import settings
from sonarium.core.db import AsyncSessionLocal
from sonarium.core.exceptions import (
    ArtworkError,
    AudioMetadataError,
    LibraryFolderNotFoundError,
    ScanJobAlreadyRunningError,
    ScanJobNotFoundError,
)
from sonarium.core.models import ScanJob, ScanJobStatus, ScanResult, ScanType
from sonarium.core.progress_store import (
    ScanProgress,
    ScanProgressStore,
    ScanStep,
    get_progress_store,
)
from sonarium.core.repositories import (
    LibraryRepositories,
    ScanJobRepository,
    ScanResultRepository,
    SongRepository,
)
from sonarium.core.scan_config import ScanConfig
from sonarium.core.stats import ScanStats
from sonarium.worker.artwork import ArtworkFinder, ArtworkStorage
from sonarium.worker.batch_cleaner import (
    BatchLibraryCleaner,
    ProgressObserver,
    notify_observer,
)
from sonarium.worker.filetree import AudioNode, FileTreeWalker, ImageNode
from sonarium.worker.importer import LibraryImporter
from sonarium.worker.metadata import AudioMetadataReader, AudioMetadataUpdate


@dataclass
class EditCommand:
    """Tag changes for one song of an EDIT scan."""

    song_id: int
    update: AudioMetadataUpdate


@dataclass
class ScanJobPage:
    page_index: int
    page_size: int
    total_pages: int
    scan_jobs: List[ScanJob] = field(default_factory=list)


class ScanJobService:
    """Starts scan jobs, runs their steps and answers job queries.

    Attributes:
        session_factory: Factory of the sessions each transaction runs in.
        config: Scan tunables (cleaning batch size, metadata workers).
        progress_store: In-memory store of the current step of running jobs.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        config: Optional[ScanConfig] = None,
        progress_store: Optional[ScanProgressStore] = None,
        artwork_storage: Optional[ArtworkStorage] = None,
        metadata_reader: Optional[AudioMetadataReader] = None,
        walker: Optional[FileTreeWalker] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.config = config or ScanConfig.from_settings()
        self.progress_store = progress_store or get_progress_store()
        self.artwork_storage = artwork_storage or ArtworkStorage()
        self.metadata_reader = metadata_reader or AudioMetadataReader()
        self.walker = walker or FileTreeWalker()
        self.artwork_finder = ArtworkFinder(self.artwork_storage, self.metadata_reader)
        self.batch_cleaner = BatchLibraryCleaner(
            self.session_factory, self.artwork_storage, self.config
        )
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.metadata_workers,
            thread_name_prefix="sonarium-metadata",
        )

    # --- Job lifecycle -----------------------------------------------------

    async def start_scan_job(
        self, target_paths: Optional[Sequence[str]] = None
    ) -> ScanJob:
        """Create a FULL scan job and run it in a background task.

        Only songs and artworks inside `target_paths` are cleaned; the rest
        of the library is untouched.

        Raises:
            ScanJobAlreadyRunningError: If another job is in flight.
        """
        paths = self._resolve_target_paths(target_paths)
        job = await self._create_job(ScanType.FULL, paths)
        self._task = asyncio.create_task(self._run_full_scan(job.id, paths))
        return job

    async def run_scan_job(
        self, target_paths: Optional[Sequence[str]] = None
    ) -> ScanJob:
        """Create a FULL scan job and wait for it to finish."""
        paths = self._resolve_target_paths(target_paths)
        job = await self._create_job(ScanType.FULL, paths)
        await self._run_full_scan(job.id, paths)
        return await self.get_scan_job(job.id)

    async def start_edit_job(self, commands: Sequence[EditCommand]) -> ScanJob:
        """Create an EDIT scan job writing `commands` and run it in the background.

        Raises:
            ScanJobAlreadyRunningError: If another job is in flight.
        """
        commands = list(commands)
        async with self.session_factory() as session:
            repository = SongRepository(session)
            paths = []
            for command in commands:
                song = await repository.find_by_id(command.song_id)
                if song is not None:
                    paths.append(song.path)
        job = await self._create_job(ScanType.EDIT, paths)
        self._task = asyncio.create_task(self._run_edit_scan(job.id, commands))
        return job

    async def wait(self) -> None:
        """Wait for the background job started by this service, if any."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def shutdown(self) -> None:
        """Cancel a running background job and release the worker threads.

        The cancelled job stays in flight; the interruption runner marks it
        INTERRUPTED at the next startup.
        """
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _resolve_target_paths(self, target_paths: Optional[Sequence[str]]) -> List[str]:
        paths = list(target_paths or settings.LIBRARY_FOLDERS)
        if not paths:
            raise LibraryFolderNotFoundError("no library folders configured")
        return [str(Path(p).absolute()) for p in paths]

    async def _create_job(self, scan_type: ScanType, target_paths: List[str]) -> ScanJob:
        async with self._lock:
            async with self.session_factory() as session:
                repository = ScanJobRepository(session)
                running = await repository.find_in_flight()
                if running is not None:
                    raise ScanJobAlreadyRunningError(running.id)
                job = ScanJob(
                    scan_type=scan_type, target_paths=target_paths, failed_paths=[]
                ).set_status(ScanJobStatus.STARTING)
                session.add(job)
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise ScanJobAlreadyRunningError() from e
        preparing = (
            ScanStep.FULL_PREPARING
            if scan_type == ScanType.FULL
            else ScanStep.EDIT_PREPARING
        )
        self.progress_store.start_step(job.id, preparing, files=target_paths)
        logger.info(f"Scan job {job.id} ({scan_type.value}) created for {target_paths}.")
        return job

    async def _set_status(self, job_id: int, status: ScanJobStatus) -> None:
        async with self.session_factory() as session, session.begin():
            job = await ScanJobRepository(session).find_by_id(job_id)
            job.set_status(status)

    async def _complete(
        self,
        job_id: int,
        scan_type: ScanType,
        target_paths: List[str],
        stats: ScanStats,
        started: float,
    ) -> None:
        async with self.session_factory() as session, session.begin():
            repos = LibraryRepositories(session)
            result = ScanResult(
                date=datetime.now(timezone.utc),
                scan_type=scan_type,
                target_paths=target_paths,
                failed_paths=list(stats.failed_paths),
                duration=int((time.monotonic() - started) * 1000),
                song_size=await repos.songs.sum_size(),
                artwork_size=await repos.artworks.sum_size(),
                genre_count=await repos.genres.count(),
                artist_count=await repos.artists.count(),
                album_count=await repos.albums.count(),
                song_count=await repos.songs.count(),
                artwork_count=await repos.artworks.count(),
                **stats.to_dict(),
            )
            session.add(result)
            job = await ScanJobRepository(session).find_by_id(job_id)
            job.set_status(ScanJobStatus.COMPLETE)
            job.scan_result = result
            job.failed_paths = list(stats.failed_paths)
            job.log_message = f"Scan completed: {stats}"
        logger.info(f"Scan job {job_id} complete: {stats}")

    async def _fail(self, job_id: int, stats: ScanStats, error: Exception) -> None:
        async with self.session_factory() as session, session.begin():
            job = await ScanJobRepository(session).find_by_id(job_id)
            job.set_status(ScanJobStatus.FAILED)
            job.failed_paths = list(stats.failed_paths)
            job.log_message = f"{type(error).__name__}: {error}"

    def _observer(self, job_id: int) -> ProgressObserver:
        def on_progress(items_complete: int, items_total: int) -> None:
            self.progress_store.update_value(job_id, items_complete, items_total)

        return on_progress

    # --- FULL scan ---------------------------------------------------------

    async def _run_full_scan(self, job_id: int, target_paths: List[str]) -> None:
        started = time.monotonic()
        stats = ScanStats()
        loop = asyncio.get_running_loop()
        try:
            await self._set_status(job_id, ScanJobStatus.STARTED)
            for path in target_paths:
                if not Path(path).is_dir():
                    raise LibraryFolderNotFoundError(path)

            self.progress_store.start_step(job_id, ScanStep.FULL_SEARCHING_MEDIA)
            audio_nodes: List[AudioNode] = []
            image_nodes: List[ImageNode] = []
            for path in target_paths:
                tree = await loop.run_in_executor(None, self.walker.walk, path)
                audio_nodes.extend(tree.root.child_audios_recursively())
                image_nodes.extend(tree.root.child_images_recursively())
                stats.failed_paths.extend(tree.failed_paths)
            logger.info(
                f"Scan job {job_id}: found {len(audio_nodes)} audio files "
                f"and {len(image_nodes)} images."
            )

            self.progress_store.start_step(job_id, ScanStep.FULL_CLEANING_SONGS)
            stats.merge(
                await self.batch_cleaner.clean_songs(
                    audio_nodes, self._observer(job_id), target_paths
                )
            )

            self.progress_store.start_step(job_id, ScanStep.FULL_CLEANING_ARTWORKS)
            stats.merge(
                await self.batch_cleaner.clean_artworks(
                    image_nodes, self._observer(job_id), target_paths
                )
            )

            self.progress_store.start_step(job_id, ScanStep.FULL_IMPORTING)
            await self._import_audio_nodes(audio_nodes, stats, self._observer(job_id))

            self.progress_store.start_step(job_id, ScanStep.FULL_SEARCHING_ARTWORKS)
            await self._search_artworks(audio_nodes, stats, self._observer(job_id))

            await self._complete(job_id, ScanType.FULL, target_paths, stats, started)
        except asyncio.CancelledError:
            logger.warning(f"Scan job {job_id} cancelled; it stays in flight until restart.")
            raise
        except Exception as e:
            logger.exception(f"Scan job {job_id} failed.")
            await self._fail(job_id, stats, e)
        finally:
            self.progress_store.clear(job_id)

    async def _import_audio_nodes(
        self,
        audio_nodes: Sequence[AudioNode],
        stats: ScanStats,
        observer: Optional[ProgressObserver],
    ) -> None:
        """Read metadata in the worker pool and import songs one transaction each.

        Reads run ahead in windows of `metadata_workers` files; imports stay
        sequential.
        """
        loop = asyncio.get_running_loop()
        window = self.config.metadata_workers
        total = len(audio_nodes)
        items_complete = 0
        for start in range(0, total, window):
            nodes = audio_nodes[start : start + window]
            results = await asyncio.gather(
                *(
                    loop.run_in_executor(self._executor, self.metadata_reader.read, n.path)
                    for n in nodes
                ),
                return_exceptions=True,
            )
            for node, result in zip(nodes, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, Exception):
                    logger.warning(f"Could not read metadata of {node.path}: {result}")
                    stats.failed_paths.append(str(node.path))
                else:
                    await self._import_song(node, result, stats)
                items_complete += 1
                notify_observer(observer, items_complete, total)

    async def _import_song(self, node: AudioNode, metadata, stats: ScanStats) -> bool:
        """Import one song in its own transaction.

        File errors roll back this song only and record it as a failed path.
        """
        song_stats = ScanStats(processed_audio_file_count=1)
        try:
            async with self.session_factory() as session, session.begin():
                importer = LibraryImporter(session, self.artwork_finder, song_stats)
                await importer.import_audio_data(node, metadata)
        except (OSError, AudioMetadataError, ArtworkError) as e:
            logger.warning(f"Could not import {node.path}: {e}")
            stats.failed_paths.append(str(node.path))
            return False
        stats.merge(song_stats)
        return True

    async def _search_artworks(
        self,
        audio_nodes: Sequence[AudioNode],
        stats: ScanStats,
        observer: Optional[ProgressObserver],
    ) -> None:
        """Attach folder images to imported songs that have no artwork."""
        total = len(audio_nodes)
        for index, node in enumerate(audio_nodes, start=1):
            song_stats = ScanStats()
            async with self.session_factory() as session, session.begin():
                song = await SongRepository(session).find_by_path(str(node.path))
                if song is not None and song.artwork_id is None:
                    try:
                        files = await self.artwork_finder.find_and_save_file_artwork(
                            session, node
                        )
                    except ArtworkError as e:
                        logger.warning(f"Could not load artwork for {node.path}: {e}")
                        files = None
                    if files is not None:
                        if files.created:
                            song_stats.created_artwork_count += 1
                        importer = LibraryImporter(session, self.artwork_finder, song_stats)
                        await importer.import_artwork(song.id, files)
            stats.merge(song_stats)
            notify_observer(observer, index, total)

    # --- EDIT scan ---------------------------------------------------------

    async def _run_edit_scan(self, job_id: int, commands: List[EditCommand]) -> None:
        started = time.monotonic()
        stats = ScanStats()
        loop = asyncio.get_running_loop()
        target_paths: List[str] = []
        try:
            await self._set_status(job_id, ScanJobStatus.STARTED)

            edits: List[Tuple[str, AudioMetadataUpdate]] = []
            async with self.session_factory() as session:
                repository = SongRepository(session)
                for command in commands:
                    song = await repository.find_by_id(command.song_id)
                    if song is None:
                        logger.warning(f"Cannot edit song {command.song_id}: not found.")
                        stats.failed_paths.append(f"song:{command.song_id}")
                        continue
                    edits.append((song.path, command.update))
            target_paths = [path for path, _ in edits]

            self.progress_store.start_step(job_id, ScanStep.EDIT_WRITING)
            observer = self._observer(job_id)
            edited_nodes: List[AudioNode] = []
            for index, (path, update) in enumerate(edits, start=1):
                try:
                    if not update.is_empty():
                        await loop.run_in_executor(
                            self._executor, self.metadata_reader.write, Path(path), update
                        )
                    metadata = await loop.run_in_executor(
                        self._executor, self.metadata_reader.read, Path(path)
                    )
                    node = await loop.run_in_executor(
                        None, self.walker.audio_node, path
                    )
                except Exception as e:
                    logger.warning(f"Could not edit {path}: {e}")
                    stats.failed_paths.append(path)
                    node = None
                if node is not None and await self._import_song(node, metadata, stats):
                    edited_nodes.append(node)
                notify_observer(observer, index, len(edits))

            self.progress_store.start_step(job_id, ScanStep.EDIT_SEARCHING_ARTWORKS)
            await self._search_artworks(edited_nodes, stats, self._observer(job_id))

            await self._complete(job_id, ScanType.EDIT, target_paths, stats, started)
        except asyncio.CancelledError:
            logger.warning(f"Edit job {job_id} cancelled; it stays in flight until restart.")
            raise
        except Exception as e:
            logger.exception(f"Edit job {job_id} failed.")
            await self._fail(job_id, stats, e)
        finally:
            self.progress_store.clear(job_id)

    # --- Queries -----------------------------------------------------------

    async def get_scan_job(self, scan_job_id: int) -> ScanJob:
        async with self.session_factory() as session:
            job = await ScanJobRepository(session).find_by_id(scan_job_id)
        if job is None:
            raise ScanJobNotFoundError(scan_job_id)
        return job

    async def get_scan_jobs(self, page_index: int = 0, page_size: int = 20) -> ScanJobPage:
        """Scan jobs newest first."""
        async with self.session_factory() as session:
            repository = ScanJobRepository(session)
            total = await repository.count()
            jobs = await repository.find_newest_first(page_index * page_size, page_size)
        return ScanJobPage(
            page_index=page_index,
            page_size=page_size,
            total_pages=(total + page_size - 1) // page_size,
            scan_jobs=jobs,
        )

    async def get_current_scan_job_progress(self) -> Optional[ScanProgress]:
        async with self.session_factory() as session:
            job = await ScanJobRepository(session).find_in_flight()
        if job is None:
            return None
        return self.progress_store.get(job.id)

    async def get_scan_statistics(self) -> Optional[ScanResult]:
        """Result of the latest completed scan, or None if none completed yet."""
        async with self.session_factory() as session:
            return await ScanResultRepository(session).find_latest()
